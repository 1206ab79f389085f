"""Per-file chunk references and dedup ratios."""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple


@dataclass
class FileRecord:
    """Chunk references of one scanned index file."""

    path: str
    ref_chunks: List[int] = field(default_factory=list)
    unique_chunks: int = 0

    @property
    def reference_count(self) -> int:
        return len(self.ref_chunks)

    @property
    def dedup_ratio(self) -> float:
        """References per unique chunk; 0.0 if the record was never finalized."""
        if self.unique_chunks == 0:
            return 0.0
        return len(self.ref_chunks) / self.unique_chunks

    def to_dict(self) -> Dict[str, object]:
        return {
            "filename": self.path,
            "num_ref_chunks": self.reference_count,
            "unique_chunks": self.unique_chunks,
        }


class FileRegistry:
    """
    Maps each index file path to the ordered dense digest indices it references.

    Like DigestRegistry it has no internal locking.
    """

    def __init__(self):
        self._files: Dict[str, FileRecord] = {}

    def add_reference(self, path: str, digest_index: int) -> None:
        """Append a digest reference to a file, creating its record on first use."""
        record = self._files.get(path)
        if record is None:
            record = self._files[path] = FileRecord(path)
        record.ref_chunks.append(digest_index)

    def finalize_dedup(self, path: str) -> int:
        """
        Compute the number of distinct digests referenced by a file.

        Returns:
            The unique-chunk count (0 for unknown files)
        """
        record = self._files.get(path)
        if record is None:
            return 0
        record.unique_chunks = len(set(record.ref_chunks))
        return record.unique_chunks

    def finalize_all(self) -> None:
        for path in self._files:
            self.finalize_dedup(path)

    def get(self, path: str) -> Optional[FileRecord]:
        return self._files.get(path)

    def paths(self) -> List[str]:
        return list(self._files)

    def records(self) -> Iterator[FileRecord]:
        return iter(self._files.values())

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    @property
    def total_references(self) -> int:
        return sum(len(r.ref_chunks) for r in self._files.values())

    def top_by_dedup_ratio(self, n: int) -> List[Tuple[str, float]]:
        """Files with the highest dedup ratio, ties ordered by path."""
        if n <= 0:
            return []
        ranked = sorted(
            ((record.path, record.dedup_ratio) for record in self._files.values()),
            key=lambda item: (-item[1], item[0]),
        )
        return ranked[:n]
