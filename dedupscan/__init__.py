"""dedupscan - Deduplication statistics for content-addressed backup index files."""

__version__ = "0.1.0"

from .core.session import ScanSession
from .core.scanner import IndexScanner, ScanResult
from .core.reporting import Reporter

__all__ = ["ScanSession", "IndexScanner", "ScanResult", "Reporter", "__version__"]
