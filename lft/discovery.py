"""
UDP broadcast discovery for LFT.

- The sender broadcasts a DISCOVERY_REQUEST carrying its own IP and
  response port, a few times in a row, then waits for one reply
- The receiver runs a Responder thread that answers well-formed requests
  with the DISCOVERY_RESPONSE keyword, unicast to the embedded address
- First valid reply wins; there is no multi-peer selection

Usage::

    # receiver
    with Responder(settings) as responder:
        ...                      # accept the TCP connection

    # sender
    peer_ip = find_peer(settings)
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Optional

from .config import Settings
from .errors import DiscoveryError, SetupError
from .protocol import (
    DATAGRAM_SIZE,
    DiscoveryRequest,
    decode_discovery_request,
    encode_discovery_request,
    encode_discovery_response,
    is_discovery_response,
)

log = logging.getLogger("lft.discovery")

_PROBE_ADDR = ("8.8.8.8", 80)   # never contacted; only selects the outbound route


# ---------------------------------------------------------------------------
# Local address
# ---------------------------------------------------------------------------

def get_local_ip() -> str:
    """Return the IPv4 address this host uses on the local network."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(_PROBE_ADDR)
            return s.getsockname()[0]
    except OSError as exc:
        log.debug("Route probe failed (%s), falling back to host addresses", exc)

    try:
        _name, _aliases, addrs = socket.gethostbyname_ex(socket.gethostname())
    except OSError as exc:
        raise SetupError(f"Unable to determine local IP: {exc}") from exc
    for addr in addrs:
        if not addr.startswith("127."):
            return addr
    raise SetupError("Unable to determine local IP: no non-loopback IPv4 address")


def _udp_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    return sock


# ---------------------------------------------------------------------------
# Requester
# ---------------------------------------------------------------------------

def find_peer(settings: Settings) -> str:
    """
    Broadcast a discovery request and return the IP of the first receiver
    that answers. Raises DiscoveryError on timeout or an invalid reply.
    """
    local_ip = settings.local_ip or get_local_ip()
    sock = _udp_socket()
    try:
        try:
            sock.bind((local_ip, settings.response_port))
        except OSError as exc:
            raise SetupError(
                f"Cannot bind UDP {local_ip}:{settings.response_port}: {exc}") from exc

        deadline = time.monotonic() + settings.timeout
        request = encode_discovery_request(
            DiscoveryRequest(ip=local_ip, port=settings.response_port))
        target = (settings.broadcast_address, settings.discovery_port)

        for attempt in range(settings.broadcast_attempts):
            try:
                sock.sendto(request, target)
                log.debug("Discovery request %d/%d → %s:%d",
                          attempt + 1, settings.broadcast_attempts, *target)
            except OSError as exc:
                log.warning("Discovery broadcast failed: %s", exc)
            time.sleep(settings.broadcast_interval)

        sock.settimeout(max(deadline - time.monotonic(), 0.001))
        try:
            data, addr = sock.recvfrom(DATAGRAM_SIZE)
        except TimeoutError:
            raise DiscoveryError(
                f"No receiver found within {settings.timeout:.0f}s") from None
        except OSError as exc:
            raise DiscoveryError(f"Discovery receive failed: {exc}") from exc

        if not is_discovery_response(data):
            raise DiscoveryError(f"Invalid discovery response from {addr[0]}")
        log.info("Receiver found at %s", addr[0])
        return addr[0]
    finally:
        sock.close()


# ---------------------------------------------------------------------------
# Responder
# ---------------------------------------------------------------------------

class Responder:
    """
    Background thread answering discovery requests until cancelled.

    *cancel* is checked on every loop iteration; the socket timeout only
    bounds how long a single receive may block.
    """

    def __init__(
        self,
        settings: Settings,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.settings = settings
        self.answered = 0
        self._cancel = cancel or threading.Event()
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        host = self.settings.local_ip or ""
        sock = _udp_socket()
        try:
            sock.bind((host, self.settings.discovery_port))
        except OSError as exc:
            sock.close()
            raise SetupError(
                f"Cannot bind discovery port {self.settings.discovery_port}: {exc}") from exc
        sock.settimeout(self.settings.responder_poll)
        self._sock = sock
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="lft-discovery"
        )
        self._thread.start()
        log.debug("Responder listening on %s:%d", host or "*", self.settings.discovery_port)

    def stop(self) -> None:
        self._cancel.set()
        if self._thread:
            self._thread.join(timeout=self.settings.responder_poll * 4)
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass
        log.debug("Responder stopped (%d answered)", self.answered)

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def __enter__(self) -> Responder:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def _run(self) -> None:
        assert self._sock is not None
        while not self._cancel.is_set():
            try:
                data, addr = self._sock.recvfrom(DATAGRAM_SIZE)
            except TimeoutError:
                continue
            except OSError:
                if not self._cancel.is_set():
                    log.exception("Discovery recv error")
                break
            self.handle(data, addr[0])

    def handle(self, data: bytes, src_ip: str) -> bool:
        """Answer *data* if it is a discovery request. Returns True if answered."""
        request = decode_discovery_request(data)
        if request is None:
            log.debug("Ignoring %d-byte datagram from %s", len(data), src_ip)
            return False
        assert self._sock is not None
        try:
            self._sock.sendto(encode_discovery_response(), (request.ip, request.port))
        except OSError as exc:
            log.warning("Discovery reply to %s:%d failed: %s", request.ip, request.port, exc)
            return False
        self.answered += 1
        log.info("Answered discovery request from %s (reply to %s:%d)",
                 src_ip, request.ip, request.port)
        return True
