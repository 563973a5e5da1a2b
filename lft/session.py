"""
LFT transfer session: sender and receiver sides.

SendSession
-----------
    Validates the source, discovers a receiver, pre-scans totals, then
    streams root metadata → STATS_INFO → (FILE_START + bytes)* →
    TRANSFER_END over one TCP connection.

ReceiveSession
--------------
    Listens for exactly one connection while a discovery Responder runs,
    then rebuilds the tree under dest_dir. A file that fails mid-way is
    deleted; totals advertised by the sender are advisory and grow to
    match what actually arrived.

Neither side retries: any error ends the session and propagates.
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import BinaryIO, Callable

from .config import Settings
from .discovery import Responder, find_peer, get_local_ip
from .errors import ProtocolError, SetupError, TransferError
from .protocol import (
    END_MARKER,
    MAX_LINE_BYTES,
    FileHeader,
    RootMeta,
    StatsHeader,
    decode_file_header,
    decode_root,
    decode_stats,
    encode_end,
    encode_file_header,
    encode_root,
    encode_stats,
    is_end,
)
from .stats import UNKNOWN_PROGRESS, StatsEstimator, Status
from .transfer import FileEntry, iter_files, read_exact_chunks, safe_destination, scan_path

log = logging.getLogger("lft.session")

SOCK_BUF: int = 16 * 1024 * 1024

Notify = Callable[[str], None]


def _tune(sock: socket.socket) -> None:
    """Apply socket buffer sizes; the OS may clamp or refuse them."""
    for opt in (socket.SO_SNDBUF, socket.SO_RCVBUF):
        try:
            sock.setsockopt(socket.SOL_SOCKET, opt, SOCK_BUF)
        except OSError:
            pass


def _quiet(_text: str) -> None:
    pass


# ---------------------------------------------------------------------------
# Sender
# ---------------------------------------------------------------------------

class SendSession:
    """
    Send one file or directory tree to a discovered receiver.

    run() does the whole job; scan() and stream() are the halves after
    discovery, usable on an already-connected socket.
    """

    def __init__(
        self,
        source: str | Path,
        settings: Settings,
        estimator: StatsEstimator,
        notify: Notify | None = None,
    ) -> None:
        self.source = Path(source)
        self.settings = settings
        self.estimator = estimator
        self._notify = notify or _quiet
        self.total_files = 0
        self.total_bytes = 0
        self._scanned = False

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Execute the full send. Raises on any failure."""
        self._notify("Scanning files...")
        if not self.source.exists():
            raise SetupError(f"Source does not exist: {self.source}")

        peer_ip = find_peer(self.settings)
        self._notify(f"Connected to receiver: {peer_ip}")

        self.scan()
        self._notify("Transferring files...")
        sock = self._connect(peer_ip)
        with sock:
            self.stream(sock)

    def scan(self) -> None:
        self.estimator.reset(Status.SCANNING)
        self.total_files, self.total_bytes = scan_path(self.source)
        self.estimator.set_totals(self.total_files, self.total_bytes,
                                  status=Status.TRANSFERRING)
        self._scanned = True
        log.info("Scanned %s: %d file(s), %d bytes",
                 self.source, self.total_files, self.total_bytes)

    def stream(self, sock: socket.socket) -> None:
        """Write the whole transfer to a connected socket."""
        if not self._scanned:
            self.scan()

        root = self.source.resolve()
        self._send(sock, encode_root(RootMeta(name=root.name, is_dir=root.is_dir())))
        self._send(sock, encode_stats(StatsHeader(self.total_files, self.total_bytes)))

        start = self.estimator.now()
        transferred = 0
        for entry in iter_files(root):
            transferred = self._send_file(sock, entry, transferred, start)

        self._send(sock, encode_end())
        self.estimator.complete()
        self._notify("Transfer complete")
        log.info("Session complete: %d file(s), %d bytes sent", self.total_files, transferred)

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _connect(self, peer_ip: str) -> socket.socket:
        addr = (peer_ip, self.settings.transfer_port)
        sock = socket.create_connection(addr, timeout=self.settings.timeout)
        _tune(sock)
        sock.settimeout(None)
        log.debug("Connected to %s:%d", *addr)
        return sock

    def _send(self, sock: socket.socket, data: bytes) -> None:
        # Deadline per write; unbounded again between writes.
        sock.settimeout(self.settings.io_timeout)
        sock.sendall(data)
        sock.settimeout(None)

    def _send_file(
        self,
        sock: socket.socket,
        entry: FileEntry,
        transferred: int,
        start: float,
    ) -> int:
        log.debug("Sending %s (%d bytes)", entry.rel_path, entry.size)
        self.estimator.update(entry.rel_path, entry.size, transferred, start)

        self._send(sock, encode_file_header(FileHeader(entry.rel_path, entry.size)))
        for block in read_exact_chunks(entry.abs_path, entry.size, self.settings.buffer_size):
            self._send(sock, block)
            transferred += len(block)
            self.estimator.update(entry.rel_path, entry.size, transferred, start)

        self.estimator.file_completed(transferred)
        return transferred


# ---------------------------------------------------------------------------
# Receiver
# ---------------------------------------------------------------------------

class ReceiveSession:
    """
    Receive one transfer into settings.dest_dir.

    run() listens, answers discovery and accepts; receive() handles an
    already-accepted connection.
    """

    def __init__(
        self,
        settings: Settings,
        estimator: StatsEstimator,
        notify: Notify | None = None,
    ) -> None:
        self.settings = settings
        self.estimator = estimator
        self._notify = notify or _quiet
        self.dest_dir = Path(settings.dest_dir)
        self.root: RootMeta | None = None
        self.completed_files = 0
        self.received_bytes = 0

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def run(self) -> None:
        local_ip = self.settings.local_ip or get_local_ip()
        self.estimator.reset(Status.WAITING)
        self._notify("Waiting for connection...")

        listener = self._listen(local_ip)
        with listener:
            responder = Responder(self.settings)
            responder.start()
            try:
                self._notify("Waiting for sender to connect...")
                conn, addr = self._accept(listener)
            finally:
                responder.stop()

        with conn:
            log.info("Incoming connection from %s:%d", *addr)
            self._notify("Connected to sender, receiving...")
            self.receive(conn)

    def receive(self, conn: socket.socket) -> None:
        """Decode the stream on *conn* until TRANSFER_END or end of stream."""
        _tune(conn)
        reader = conn.makefile("rb")
        try:
            self._receive(conn, reader)
        finally:
            reader.close()

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _listen(self, host: str) -> socket.socket:
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, self.settings.transfer_port))
            s.listen(1)
        except OSError as exc:
            s.close()
            raise SetupError(
                f"Cannot listen on {host}:{self.settings.transfer_port}: {exc}") from exc
        s.settimeout(self.settings.listen_timeout)
        log.info("Listening on %s:%d", host, self.settings.transfer_port)
        return s

    def _accept(self, listener: socket.socket) -> tuple[socket.socket, tuple]:
        try:
            conn, addr = listener.accept()
        except TimeoutError:
            raise TransferError(
                f"No sender connected within {self.settings.listen_timeout:.0f}s") from None
        conn.settimeout(None)
        return conn, addr

    def _receive(self, conn: socket.socket, reader: BinaryIO) -> None:
        conn.settimeout(self.settings.timeout)
        meta_line = self._readline(reader)
        if not meta_line:
            raise ProtocolError("Connection closed before root metadata")
        self.root = decode_root(meta_line)
        stats_line = self._readline(reader)
        conn.settimeout(None)

        if self.root.is_dir:
            safe_destination(self.dest_dir, self.root.name).mkdir(parents=True, exist_ok=True)

        header = decode_stats(stats_line)
        if header is None:
            log.warning("No STATS_INFO line, progress totals unknown")
            header = StatsHeader(total_files=1, total_bytes=1)
        self.estimator.set_totals(header.total_files, header.total_bytes,
                                  status=Status.TRANSFERRING, progress=UNKNOWN_PROGRESS)

        start = self.estimator.now()
        while True:
            conn.settimeout(self.settings.io_timeout)
            line = self._readline(reader)
            if not line:
                log.info("Stream ended without %s", END_MARKER)
                break
            if is_end(line):
                self._notify("Transfer complete")
                break
            file_header = decode_file_header(line)
            self._receive_file(conn, reader, file_header, start)
            self.completed_files += 1
            self.estimator.file_completed(self.received_bytes, grow_totals=True)

        conn.settimeout(None)
        self.estimator.complete(files=self.completed_files, total_bytes=self.received_bytes)
        self._notify("Files received")
        log.info("Received %d file(s), %d bytes", self.completed_files, self.received_bytes)

    def _readline(self, reader: BinaryIO) -> bytes:
        line = reader.readline(MAX_LINE_BYTES + 1)
        if len(line) > MAX_LINE_BYTES:
            raise ProtocolError(f"Header line exceeds {MAX_LINE_BYTES} bytes")
        return line

    def _receive_file(
        self,
        conn: socket.socket,
        reader: BinaryIO,
        header: FileHeader,
        start: float,
    ) -> None:
        target = safe_destination(self.dest_dir, header.rel_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self.estimator.update(header.rel_path, header.size, self.received_bytes, start)
        log.debug("Receiving %s (%d bytes)", header.rel_path, header.size)

        fh = open(target, "wb")
        try:
            with fh:
                remaining = header.size
                while remaining > 0:
                    conn.settimeout(self.settings.io_timeout)
                    block = reader.read1(min(self.settings.buffer_size, remaining))
                    if not block:
                        raise ProtocolError(
                            f"Stream ended {remaining} bytes short of {header.rel_path}")
                    self._write_chunk(fh, block)
                    remaining -= len(block)
                    self.received_bytes += len(block)
                    self.estimator.update(header.rel_path, header.size,
                                          self.received_bytes, start)
        except Exception:
            target.unlink(missing_ok=True)
            log.error("Removed incomplete file %s", target)
            raise

    def _write_chunk(self, fh: BinaryIO, block: bytes) -> None:
        fh.write(block)
