"""
LFT wire format: encode/decode of the text control lines.

TCP stream layout::

  <rootName>|<FILE|DIR>\\n
  STATS_INFO|<totalFiles>|<totalBytes>\\n
  FILE_START|<relPath>|<size>\\n  <size raw bytes>
  FILE_START|<relPath>|<size>\\n  <size raw bytes>
  ...
  TRANSFER_END\\n

Payload bytes follow their header with no delimiter; a reader must count
bytes to find the next header.

UDP discovery::

  request   GO_FILE_TRANSFER_DISCOVERY_REQUEST|<ip>|<port>
  response  GO_FILE_TRANSFER_DISCOVERY_RESPONSE

All functions here are pure: no sockets, no files.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import ProtocolError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PORT: int = 60001
DISCOVERY_PORT: int = 60002
DISCOVERY_RESPONSE_PORT: int = 60003
BROADCAST_ADDRESS: str = "255.255.255.255"

BUFFER_SIZE: int = 16 * 1024 * 1024     # 16 MiB
TIMEOUT: float = 60.0                   # seconds
IO_TIMEOUT: float = 30.0                # per write / per chunk
RESPONDER_POLL: float = 0.5
BROADCAST_ATTEMPTS: int = 3
BROADCAST_INTERVAL: float = 1.0
MAX_LINE_BYTES: int = 64 * 1024         # longest header line accepted
DATAGRAM_SIZE: int = 1024

DISCOVERY_REQUEST: str = "GO_FILE_TRANSFER_DISCOVERY_REQUEST"
DISCOVERY_RESPONSE: str = "GO_FILE_TRANSFER_DISCOVERY_RESPONSE"
FILE_HEADER_PREFIX: str = "FILE_START"
END_MARKER: str = "TRANSFER_END"
STATS_MARKER: str = "STATS_INFO"

KIND_FILE: str = "FILE"
KIND_DIR: str = "DIR"

SEP: str = "|"
ENCODING: str = "utf-8"


# ---------------------------------------------------------------------------
# Wire values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RootMeta:
    name: str
    is_dir: bool


@dataclass(frozen=True)
class StatsHeader:
    total_files: int
    total_bytes: int


@dataclass(frozen=True)
class FileHeader:
    rel_path: str       # forward-slash form
    size: int


@dataclass(frozen=True)
class DiscoveryRequest:
    ip: str
    port: int


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _line(*fields: object) -> bytes:
    return (SEP.join(str(f) for f in fields) + "\n").encode(ENCODING)


def encode_root(meta: RootMeta) -> bytes:
    return _line(meta.name, KIND_DIR if meta.is_dir else KIND_FILE)


def encode_stats(header: StatsHeader) -> bytes:
    return _line(STATS_MARKER, header.total_files, header.total_bytes)


def encode_file_header(header: FileHeader) -> bytes:
    return _line(FILE_HEADER_PREFIX, header.rel_path, header.size)


def encode_end() -> bytes:
    return _line(END_MARKER)


def encode_discovery_request(req: DiscoveryRequest) -> bytes:
    return SEP.join((DISCOVERY_REQUEST, req.ip, str(req.port))).encode(ENCODING)


def encode_discovery_response() -> bytes:
    return DISCOVERY_RESPONSE.encode(ENCODING)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _text(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode(ENCODING)
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"Header is not valid {ENCODING}: {exc}") from exc
    return raw.strip()


def _int_field(value: str, what: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise ProtocolError(f"Invalid {what}: {value!r}") from None
    if n < 0:
        raise ProtocolError(f"Negative {what}: {n}")
    return n


def decode_root(raw: bytes | str) -> RootMeta:
    parts = _text(raw).split(SEP)
    if len(parts) != 2 or not parts[0]:
        raise ProtocolError(f"Malformed root metadata line: {raw!r}")
    name, kind = parts
    if kind not in (KIND_FILE, KIND_DIR):
        raise ProtocolError(f"Unknown root kind: {kind!r}")
    return RootMeta(name=name, is_dir=kind == KIND_DIR)


def decode_stats(raw: bytes | str) -> Optional[StatsHeader]:
    """Parse a STATS_INFO line. Returns None if the line is not one."""
    parts = _text(raw).split(SEP)
    if len(parts) != 3 or parts[0] != STATS_MARKER:
        return None
    try:
        return StatsHeader(
            total_files=_int_field(parts[1], "file count"),
            total_bytes=_int_field(parts[2], "byte count"),
        )
    except ProtocolError:
        return None


def is_end(raw: bytes | str) -> bool:
    return _text(raw) == END_MARKER


def decode_file_header(raw: bytes | str) -> FileHeader:
    line = _text(raw)
    if not line.startswith(FILE_HEADER_PREFIX):
        raise ProtocolError(f"Expected {FILE_HEADER_PREFIX} header, got {line[:80]!r}")
    parts = line.split(SEP)
    if len(parts) != 3 or parts[0] != FILE_HEADER_PREFIX:
        raise ProtocolError(f"Malformed file header: {line[:80]!r}")
    if not parts[1]:
        raise ProtocolError("Empty relative path in file header")
    return FileHeader(rel_path=parts[1], size=_int_field(parts[2], "file size"))


def decode_discovery_request(raw: bytes) -> Optional[DiscoveryRequest]:
    """Parse a discovery request datagram. Returns None for anything else."""
    try:
        parts = raw.decode(ENCODING).strip().split(SEP)
    except UnicodeDecodeError:
        return None
    if len(parts) != 3 or parts[0] != DISCOVERY_REQUEST:
        return None
    try:
        port = int(parts[2])
    except ValueError:
        return None
    if not parts[1] or not 0 < port < 65536:
        return None
    return DiscoveryRequest(ip=parts[1], port=port)


def is_discovery_response(raw: bytes) -> bool:
    try:
        return raw.decode(ENCODING).strip() == DISCOVERY_RESPONSE
    except UnicodeDecodeError:
        return False
