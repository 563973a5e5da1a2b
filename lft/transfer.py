"""
Filesystem side of a transfer.

scan_path(path) → (file_count, byte_count)
    Pre-scan used for the STATS_INFO line. A plain file counts as one.

iter_files(path) → Iterator[FileEntry]
    Depth-first walk, children in name order. rel_path is relative to the
    parent of *path* in forward-slash form, so it always starts with the
    top-level item's own name.

read_exact_chunks(path, size, chunk_size) → Iterator[bytes]
    Streams exactly *size* bytes of a file in bounded chunks.

get_path_info(path) → PathInfo
    Name, size, kind and folder totals for display.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Iterator, Optional

from .errors import ProtocolError
from .protocol import BUFFER_SIZE
from .stats import format_size


@dataclass
class FileEntry:
    abs_path: Path       # absolute path on disk
    rel_path: str        # wire path, forward slashes
    size: int            # file size in bytes


# ---------------------------------------------------------------------------
# Scanning and walking
# ---------------------------------------------------------------------------

def scan_path(path: str | Path) -> tuple[int, int]:
    """Return (total_files, total_bytes) under *path*."""
    p = Path(path)
    st = p.stat()
    if not p.is_dir():
        return 1, st.st_size

    total_files = 0
    total_bytes = 0
    for root, _dirs, files in os.walk(p, onerror=_raise):
        for fname in files:
            total_files += 1
            total_bytes += (Path(root) / fname).stat().st_size
    return total_files, total_bytes


def _raise(exc: OSError) -> None:
    raise exc


def iter_files(path: str | Path) -> Iterator[FileEntry]:
    """Yield every file under *path* depth-first, directory entries sorted by name."""
    p = Path(path).resolve()
    if not p.exists():
        raise FileNotFoundError(f"Path not found: {p}")
    if not p.is_dir():
        yield FileEntry(abs_path=p, rel_path=p.name, size=p.stat().st_size)
        return
    yield from _walk(p, p.parent)


def _walk(directory: Path, base: Path) -> Iterator[FileEntry]:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        child = Path(entry.path)
        if entry.is_dir():
            yield from _walk(child, base)
        else:
            rel = child.relative_to(base).as_posix()
            yield FileEntry(abs_path=child, rel_path=rel, size=entry.stat().st_size)


def read_exact_chunks(
    path: Path | str,
    size: int,
    chunk_size: int = BUFFER_SIZE,
) -> Iterator[bytes]:
    """
    Yield the first *size* bytes of *path* in chunks of at most *chunk_size*.

    The header already promised *size* bytes to the peer, so a file that
    shrank since it was scanned is an error rather than a short payload.
    """
    remaining = size
    with open(path, "rb") as fh:
        while remaining > 0:
            block = fh.read(min(chunk_size, remaining))
            if not block:
                raise OSError(f"{path} shrank while sending ({remaining} bytes missing)")
            remaining -= len(block)
            yield block


def safe_destination(dest_dir: Path | str, rel_path: str) -> Path:
    """Map a wire path onto *dest_dir*, rejecting anything that escapes it."""
    rel = PurePosixPath(rel_path)
    parts = [part for part in rel.parts if part not in ("", ".")]
    if (
        rel.is_absolute()
        or PureWindowsPath(rel_path).anchor
        or ".." in parts
        or not parts
    ):
        raise ProtocolError(f"Unsafe path in stream: {rel_path!r}")
    return Path(dest_dir).joinpath(*parts)


# ---------------------------------------------------------------------------
# Path info
# ---------------------------------------------------------------------------

@dataclass
class PathInfo:
    name: str = ""
    path: str = ""
    is_dir: bool = False
    size: int = 0
    mod_time: str = ""
    total_files: Optional[int] = None
    total_bytes: Optional[int] = None
    size_display: str = ""
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def get_path_info(path: str) -> PathInfo:
    clean = path.strip()
    if not clean:
        return PathInfo(error="Path is empty")

    p = Path(clean)
    try:
        st = p.stat()
    except FileNotFoundError:
        return PathInfo(path=clean, error=f"File or folder does not exist: {clean}")
    except PermissionError:
        return PathInfo(path=clean, error=f"Permission denied: {clean}")
    except OSError as exc:
        return PathInfo(path=clean, error=f"Cannot access path: {exc}")

    info = PathInfo(
        name=p.name or clean,
        path=clean,
        is_dir=p.is_dir(),
        size=st.st_size,
        mod_time=datetime.fromtimestamp(st.st_mtime).strftime("%Y-%m-%d %H:%M:%S"),
    )
    if info.is_dir:
        try:
            info.total_files, info.total_bytes = scan_path(p)
        except OSError:
            info.size_display = "folder"
        else:
            info.size_display = (
                f"folder ({info.total_files} files, {format_size(info.total_bytes)})")
    else:
        info.size_display = format_size(st.st_size)
    return info
