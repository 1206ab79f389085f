"""Decoding of fixed-size (.fidx) and dynamic (.didx) backup index files.

Both formats start with a 4096-byte little-endian header followed by a flat
record sequence that runs until end of file:

    .fidx  header: magic, uuid, ctime, index csum, size, chunk size, reserved
           body:   32-byte digests, one per chunk
    .didx  header: magic, uuid, ctime, index csum, reserved
           body:   (8-byte end offset, 32-byte digest) records

A trailing partial record at the end of the body is dropped without error.
"""

import logging
import os
import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, BinaryIO, Dict, Iterator, List, NamedTuple, Optional, Union

from .errors import IndexReadError, InvalidFormatError

logger = logging.getLogger(__name__)

INDEX_HEADER_SIZE = 4096
MAGIC_SIZE = 8
UUID_SIZE = 16
CSUM_SIZE = 32
DIGEST_SIZE = 32
CHUNK_LIST_RESERVED_SIZE = 4016
CHUNK_OFFSET_RESERVED_SIZE = 4032
CHUNK_OFFSET_ENTRY_SIZE = 8 + DIGEST_SIZE

CHUNK_LIST_MAGIC = bytes([47, 127, 65, 237, 145, 253, 15, 205])
CHUNK_OFFSET_MAGIC = bytes([28, 145, 78, 165, 25, 186, 179, 205])

CHUNK_LIST_EXTENSION = ".fidx"
CHUNK_OFFSET_EXTENSION = ".didx"
INDEX_EXTENSIONS = (CHUNK_LIST_EXTENSION, CHUNK_OFFSET_EXTENSION)

# records pulled from the stream per read() call
READ_BLOCK_RECORDS = 4096

_CHUNK_LIST_HEADER = struct.Struct(f"<{MAGIC_SIZE}s{UUID_SIZE}sq{CSUM_SIZE}sQQ{CHUNK_LIST_RESERVED_SIZE}s")
_CHUNK_OFFSET_HEADER = struct.Struct(f"<{MAGIC_SIZE}s{UUID_SIZE}sq{CSUM_SIZE}s{CHUNK_OFFSET_RESERVED_SIZE}s")
_CHUNK_OFFSET_ENTRY = struct.Struct(f"<Q{DIGEST_SIZE}s")

assert _CHUNK_LIST_HEADER.size == INDEX_HEADER_SIZE
assert _CHUNK_OFFSET_HEADER.size == INDEX_HEADER_SIZE

Digest = bytes
PathLike = Union[str, "os.PathLike[str]"]


def _format_ctime(ctime: int) -> Optional[str]:
    try:
        return datetime.fromtimestamp(ctime, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def _check_field(name: str, value: bytes, size: int) -> None:
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(value)}")


@dataclass(frozen=True)
class ChunkListHeader:
    """Header of a fixed-size chunk-list index (.fidx)."""

    magic: bytes = CHUNK_LIST_MAGIC
    uuid: bytes = bytes(UUID_SIZE)
    ctime: int = 0
    index_csum: bytes = bytes(CSUM_SIZE)
    size: int = 0
    chunk_size: int = 0
    reserved: bytes = bytes(CHUNK_LIST_RESERVED_SIZE)

    @classmethod
    def decode(cls, buf: bytes) -> "ChunkListHeader":
        """Unpack a 4096-byte header block without validating the magic."""
        return cls(*_CHUNK_LIST_HEADER.unpack(buf))

    def encode(self) -> bytes:
        """Pack the header back into its exact 4096-byte on-disk form."""
        _check_field("magic", self.magic, MAGIC_SIZE)
        _check_field("uuid", self.uuid, UUID_SIZE)
        _check_field("index_csum", self.index_csum, CSUM_SIZE)
        _check_field("reserved", self.reserved, CHUNK_LIST_RESERVED_SIZE)
        return _CHUNK_LIST_HEADER.pack(
            self.magic, self.uuid, self.ctime, self.index_csum,
            self.size, self.chunk_size, self.reserved
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid.hex(),
            "ctime": self.ctime,
            "ctime_iso": _format_ctime(self.ctime),
            "index_csum": self.index_csum.hex(),
            "size": self.size,
            "chunk_size": self.chunk_size,
        }


@dataclass(frozen=True)
class ChunkOffsetHeader:
    """Header of a dynamic chunk-offset index (.didx)."""

    magic: bytes = CHUNK_OFFSET_MAGIC
    uuid: bytes = bytes(UUID_SIZE)
    ctime: int = 0
    index_csum: bytes = bytes(CSUM_SIZE)
    reserved: bytes = bytes(CHUNK_OFFSET_RESERVED_SIZE)

    @classmethod
    def decode(cls, buf: bytes) -> "ChunkOffsetHeader":
        """Unpack a 4096-byte header block without validating the magic."""
        return cls(*_CHUNK_OFFSET_HEADER.unpack(buf))

    def encode(self) -> bytes:
        """Pack the header back into its exact 4096-byte on-disk form."""
        _check_field("magic", self.magic, MAGIC_SIZE)
        _check_field("uuid", self.uuid, UUID_SIZE)
        _check_field("index_csum", self.index_csum, CSUM_SIZE)
        _check_field("reserved", self.reserved, CHUNK_OFFSET_RESERVED_SIZE)
        return _CHUNK_OFFSET_HEADER.pack(
            self.magic, self.uuid, self.ctime, self.index_csum, self.reserved
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid.hex(),
            "ctime": self.ctime,
            "ctime_iso": _format_ctime(self.ctime),
            "index_csum": self.index_csum.hex(),
        }


class ChunkOffsetEntry(NamedTuple):
    """One .didx record: end offset of the chunk in the archive and its digest."""
    offset: int
    digest: Digest


@dataclass
class ChunkListIndex:
    """A decoded .fidx file."""

    path: str
    header: ChunkListHeader
    digests: List[Digest] = field(default_factory=list)

    kind = "fidx"

    @property
    def digest_count(self) -> int:
        return len(self.digests)

    @property
    def expected_chunk_count(self) -> int:
        """Number of chunks implied by the header's size and chunk size."""
        if self.header.chunk_size == 0:
            return 0
        return -(-self.header.size // self.header.chunk_size)

    def iter_digests(self) -> Iterator[Digest]:
        return iter(self.digests)


@dataclass
class ChunkOffsetIndex:
    """A decoded .didx file."""

    path: str
    header: ChunkOffsetHeader
    entries: List[ChunkOffsetEntry] = field(default_factory=list)

    kind = "didx"

    @property
    def digest_count(self) -> int:
        return len(self.entries)

    @property
    def archive_size(self) -> int:
        """End offset of the last chunk, i.e. the logical archive size."""
        return self.entries[-1].offset if self.entries else 0

    def iter_digests(self) -> Iterator[Digest]:
        return (entry.digest for entry in self.entries)


IndexFile = Union[ChunkListIndex, ChunkOffsetIndex]


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, retrying short reads until EOF."""
    buf = stream.read(size)
    while len(buf) < size:
        more = stream.read(size - len(buf))
        if not more:
            break
        buf += more
    return buf


def _read_header_block(stream: BinaryIO, magic: bytes, label: str,
                       path: Optional[str]) -> bytes:
    buf = _read_exact(stream, INDEX_HEADER_SIZE)
    if len(buf) < INDEX_HEADER_SIZE:
        raise InvalidFormatError(
            f"{label} header too short: {len(buf)} of {INDEX_HEADER_SIZE} bytes",
            file_path=path,
            reason="short_header",
            details={"header_bytes": len(buf)},
        )
    if buf[:MAGIC_SIZE] != magic:
        raise InvalidFormatError(
            f"invalid magic: {list(buf[:MAGIC_SIZE])}",
            file_path=path,
            reason="magic",
            details={"magic": buf[:MAGIC_SIZE].hex()},
        )
    return buf


def _iter_record_blocks(stream: BinaryIO, record_size: int) -> Iterator[bytes]:
    """Yield stream contents in blocks holding a whole number of records.

    Whatever is left over at EOF (fewer than ``record_size`` bytes) is
    discarded.
    """
    block_size = record_size * READ_BLOCK_RECORDS
    pending = b""
    while True:
        block = stream.read(block_size)
        if not block:
            break
        if pending:
            block = pending + block
        usable = len(block) - len(block) % record_size
        if usable:
            yield block[:usable]
        pending = block[usable:]

    if pending:
        logger.debug(f"Ignoring {len(pending)} trailing bytes (partial {record_size}-byte record)")


def read_chunk_list_header(stream: BinaryIO, path: Optional[str] = None) -> ChunkListHeader:
    """Read and validate a .fidx header.

    Raises:
        InvalidFormatError: on short read or magic mismatch
    """
    buf = _read_header_block(stream, CHUNK_LIST_MAGIC, "fidx", path)
    return ChunkListHeader.decode(buf)


def read_chunk_offset_header(stream: BinaryIO, path: Optional[str] = None) -> ChunkOffsetHeader:
    """Read and validate a .didx header.

    Raises:
        InvalidFormatError: on short read or magic mismatch
    """
    buf = _read_header_block(stream, CHUNK_OFFSET_MAGIC, "didx", path)
    return ChunkOffsetHeader.decode(buf)


def read_chunk_list_digests(stream: BinaryIO) -> List[Digest]:
    """Read 32-byte digests until EOF; a trailing partial digest is dropped."""
    digests: List[Digest] = []
    for block in _iter_record_blocks(stream, DIGEST_SIZE):
        digests.extend(block[i:i + DIGEST_SIZE] for i in range(0, len(block), DIGEST_SIZE))
    return digests


def read_chunk_offset_entries(stream: BinaryIO) -> List[ChunkOffsetEntry]:
    """Read 40-byte (offset, digest) records until EOF; a trailing partial record is dropped."""
    entries: List[ChunkOffsetEntry] = []
    for block in _iter_record_blocks(stream, CHUNK_OFFSET_ENTRY_SIZE):
        entries.extend(ChunkOffsetEntry(*record) for record in _CHUNK_OFFSET_ENTRY.iter_unpack(block))
    return entries


def read_chunk_list_file(path: PathLike) -> ChunkListIndex:
    """Decode a whole .fidx file.

    Raises:
        InvalidFormatError: if the header is invalid
        IndexReadError: if the file cannot be opened or read
    """
    path = os.fspath(path)
    try:
        with open(path, "rb") as f:
            header = read_chunk_list_header(f, path)
            digests = read_chunk_list_digests(f)
    except OSError as e:
        raise IndexReadError(f"cannot read {path}: {e}", file_path=path, cause=e) from e
    return ChunkListIndex(path, header, digests)


def read_chunk_offset_file(path: PathLike) -> ChunkOffsetIndex:
    """Decode a whole .didx file.

    Raises:
        InvalidFormatError: if the header is invalid
        IndexReadError: if the file cannot be opened or read
    """
    path = os.fspath(path)
    try:
        with open(path, "rb") as f:
            header = read_chunk_offset_header(f, path)
            entries = read_chunk_offset_entries(f)
    except OSError as e:
        raise IndexReadError(f"cannot read {path}: {e}", file_path=path, cause=e) from e
    return ChunkOffsetIndex(path, header, entries)


def is_index_file(name: PathLike) -> bool:
    """Check whether the extension marks a .fidx or .didx index."""
    return os.path.splitext(os.fspath(name))[1] in INDEX_EXTENSIONS


def read_index_file(path: PathLike) -> IndexFile:
    """Decode an index file, choosing the format from its extension."""
    path = os.fspath(path)
    ext = os.path.splitext(path)[1]
    if ext == CHUNK_LIST_EXTENSION:
        return read_chunk_list_file(path)
    if ext == CHUNK_OFFSET_EXTENSION:
        return read_chunk_offset_file(path)
    raise InvalidFormatError(
        f"unsupported index extension {ext!r}",
        file_path=path,
        reason="extension",
    )
