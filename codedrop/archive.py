"""
Archive Packager - turns a drop's files into one downloadable stream.

A single file is streamed as-is. Several files are written into a ZIP
archive chunk by chunk, so the whole archive never sits in memory.
"""
import logging
import sys
import time
import zipfile
from typing import Iterator, List, Optional, Sequence, Tuple

from codedrop.drop_store import DropFile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
COMPRESS_LEVEL = 9
ZIP_MEDIA_TYPE = "application/zip"
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


class _ChunkSink:
    """Write-only, non-seekable sink that ZipFile writes into."""

    def __init__(self):
        self._chunks: List[bytes] = []
        self._offset = 0

    def write(self, data) -> int:
        if data:
            self._chunks.append(bytes(data))
            self._offset += len(data)
        return len(data)

    def tell(self) -> int:
        return self._offset

    def flush(self):
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def needs_archive(files: Sequence[DropFile]) -> bool:
    return len(files) > 1


def archive_filename(code: str) -> str:
    return f"drop-{code}.zip"


def iter_file(data: bytes, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the raw bytes of a single file in chunks."""
    view = memoryview(data)
    for start in range(0, len(view), chunk_size):
        yield bytes(view[start:start + chunk_size])


def _zip_date_time(created_at: Optional[float]) -> Tuple[int, ...]:
    """Local time tuple for an entry; ZIP cannot store dates before 1980."""
    stamp = time.localtime(time.time() if created_at is None else created_at)[:6]
    return max(stamp, ZIP_EPOCH)


def _entry_info(name: str, created_at: Optional[float]) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=_zip_date_time(created_at))
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o600 << 16
    # ZipFile only applies its compresslevel to entries opened by name
    if sys.version_info >= (3, 13):
        info.compress_level = COMPRESS_LEVEL
    else:
        info._compresslevel = COMPRESS_LEVEL
    return info


def iter_zip(files: Sequence[DropFile], created_at: Optional[float] = None,
             chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield a ZIP archive of `files`, entries in input order.

    Every entry is dated `created_at` (epoch seconds, default now).
    Compression errors propagate to the caller; a partially sent archive
    is never completed silently. Closing the iterator early stops work.
    """
    sink = _ChunkSink()

    with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED,
                         compresslevel=COMPRESS_LEVEL) as archive:
        for f in files:
            with archive.open(_entry_info(f.name, created_at), mode="w") as entry:
                for chunk in iter_file(f.data, chunk_size):
                    entry.write(chunk)
                    pending = sink.drain()
                    if pending:
                        yield pending
            pending = sink.drain()
            if pending:
                yield pending

    # Central directory is written on close
    pending = sink.drain()
    if pending:
        yield pending
    logger.debug(f"Packed {len(files)} file(s) into archive")


def pack(files: Sequence[DropFile], created_at: Optional[float] = None,
         chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Stream a drop's files: raw bytes for one file, a ZIP for several."""
    if not files:
        raise ValueError("Nothing to pack")
    if needs_archive(files):
        return iter_zip(files, created_at=created_at, chunk_size=chunk_size)
    return iter_file(files[0].data, chunk_size)
