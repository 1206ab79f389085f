"""
Core scanning module: index decoding, digest and file registries, scanner.
"""

from .errors import (
    ScanError,
    InvalidFormatError,
    IndexReadError,
    WalkError,
    is_per_file_error,
    is_fatal_error
)
from .index_format import (
    ChunkListHeader,
    ChunkListIndex,
    ChunkOffsetEntry,
    ChunkOffsetHeader,
    ChunkOffsetIndex,
    read_index_file,
    is_index_file
)
from .digests import DigestRegistry, DigestOccurrence, prefix_bucket
from .files import FileRegistry, FileRecord
from .locking import ReadWriteLock
from .session import ScanSession
from .scanner import IndexScanner, ScanResult, iter_index_files, scan_directory
from .reporting import Reporter

__all__ = [
    # Errors
    'ScanError',
    'InvalidFormatError',
    'IndexReadError',
    'WalkError',
    'is_per_file_error',
    'is_fatal_error',
    # Decoding
    'ChunkListHeader',
    'ChunkListIndex',
    'ChunkOffsetEntry',
    'ChunkOffsetHeader',
    'ChunkOffsetIndex',
    'read_index_file',
    'is_index_file',
    # Registries
    'DigestRegistry',
    'DigestOccurrence',
    'prefix_bucket',
    'FileRegistry',
    'FileRecord',
    'ReadWriteLock',
    'ScanSession',
    # Scanning and reporting
    'IndexScanner',
    'ScanResult',
    'iter_index_files',
    'scan_directory',
    'Reporter',
]
