"""
Scan session: the digest and file registries behind one read/write lock.

The scanner is the only writer. Reporting and the HTTP API read through the
snapshot methods below, which may run while a scan is still in progress and
then see a subset of the final result.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from .digests import DigestOccurrence, DigestRegistry
from .files import FileRegistry
from .index_format import Digest
from .locking import ReadWriteLock


class ScanSession:
    """Owner of the registries built during one scan."""

    def __init__(self):
        self.digests = DigestRegistry()
        self.files = FileRegistry()
        self.lock = ReadWriteLock()

    def record_index(self, path: str, digests: Iterable[Digest]) -> int:
        """
        Register every digest of one decoded index file.

        The write lock is held for the whole loop so that each registry
        add and its file reference become visible together, and the file's
        unique-chunk count is final when the lock is released.

        Returns:
            Number of references recorded for the file
        """
        recorded = 0
        with self.lock.write_locked():
            for digest in digests:
                index = self.digests.add(digest)
                self.files.add_reference(path, index)
                recorded += 1
            if recorded:
                self.files.finalize_dedup(path)
        return recorded

    # -- read-only snapshots ------------------------------------------------

    def stats(self) -> Dict[str, int]:
        with self.lock.read_locked():
            return {
                "total_unique_digests": self.digests.count(),
                "total_files": len(self.files),
                "total_references": self.digests.total_occurrences,
            }

    def digest_entries(self, include_digest: bool = False,
                       prefix: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Per-digest entries in dense-index order.

        Args:
            include_digest: Add the hex digest to each entry
            prefix: Only digests whose hex form starts with this prefix
        """
        with self.lock.read_locked():
            entries = []
            for index, digest, count in self.digests.iter_entries(prefix):
                entry: Dict[str, Any] = {"digest_index": index, "count": count}
                if include_digest:
                    entry = {"digest": digest.hex(), **entry}
                entries.append(entry)
            return entries

    def file_entries(self) -> List[Dict[str, Any]]:
        with self.lock.read_locked():
            return [record.to_dict() for record in self.files.records()]

    def file_references(self, path: str) -> Optional[List[int]]:
        """Ordered dense digest indices referenced by a file, or None if unknown."""
        with self.lock.read_locked():
            record = self.files.get(path)
            return list(record.ref_chunks) if record is not None else None

    def prefix_histograms(self) -> Tuple[np.ndarray, np.ndarray]:
        """Copies of the (distinct, occurrence) prefix histograms."""
        with self.lock.read_locked():
            return self.digests.distinct_histogram, self.digests.occurrence_histogram

    def top_digests(self, n: int) -> List[DigestOccurrence]:
        with self.lock.read_locked():
            return self.digests.top_by_reference_count(n)

    def top_files(self, n: int) -> List[Tuple[str, float]]:
        with self.lock.read_locked():
            return self.files.top_by_dedup_ratio(n)

    def all_file_references(self) -> List[Tuple[str, List[int]]]:
        with self.lock.read_locked():
            return [(r.path, list(r.ref_chunks)) for r in self.files.records()]
