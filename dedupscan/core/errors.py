"""
Error types raised while decoding index files and scanning a datastore.

Per-file errors (InvalidFormatError, IndexReadError) are recovered by the
scanner; WalkError aborts the run.
"""

from typing import Optional, Any, Dict


class ScanError(Exception):
    """
    Base exception for all scan-related errors.

    Carries a structured ``details`` dict for logging and JSON reports.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize scan error.

        Args:
            message: Error message
            details: Optional detailed error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidFormatError(ScanError):
    """
    Raised when an index file does not have the expected layout.

    Covers magic mismatch, a header shorter than 4096 bytes and
    unsupported file extensions.
    """

    def __init__(self, message: str,
                 file_path: Optional[str] = None,
                 reason: str = 'format',
                 details: Optional[Dict[str, Any]] = None):
        """
        Initialize format error.

        Args:
            message: Error message
            file_path: Index file that failed to decode
            reason: Short machine-readable reason ('magic', 'short_header', 'extension')
            details: Additional error context
        """
        super().__init__(message, details)
        self.file_path = file_path
        self.reason = reason

        self.details.update({
            'file_path': file_path,
            'reason': reason
        })


class IndexReadError(ScanError):
    """Raised when an index file cannot be opened or read."""

    def __init__(self, message: str,
                 file_path: Optional[str] = None,
                 cause: Optional[OSError] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.file_path = file_path
        self.cause = cause

        self.details.update({
            'file_path': file_path,
            'errno': getattr(cause, 'errno', None)
        })


class WalkError(ScanError):
    """Raised when the directory traversal itself fails."""

    def __init__(self, message: str,
                 root: Optional[str] = None,
                 cause: Optional[OSError] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.root = root
        self.cause = cause

        self.details.update({
            'root': root,
            'path': getattr(cause, 'filename', None)
        })


def is_per_file_error(error: Exception) -> bool:
    """Check if error only invalidates a single index file."""
    return isinstance(error, (InvalidFormatError, IndexReadError))


def is_fatal_error(error: Exception) -> bool:
    """Check if error aborts the whole scan."""
    return isinstance(error, WalkError)
