"""Registry of unique chunk digests with dense indices and prefix histograms."""

from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np

from .index_format import DIGEST_SIZE, Digest

PREFIX_BUCKETS = 256 * 256


class DigestOccurrence(NamedTuple):
    """A digest together with its dense index and reference count."""
    digest: Digest
    index: int
    count: int

    @property
    def hex(self) -> str:
        return self.digest.hex()


def prefix_bucket(digest: Digest) -> int:
    """Histogram bucket of a digest: its first two bytes as big-endian uint16."""
    return (digest[0] << 8) | digest[1]


class DigestRegistry:
    """
    Assigns every distinct digest a dense index in first-seen order.

    Per index it keeps the number of references, and per 16-bit digest
    prefix it keeps two histograms: distinct digests and all occurrences.

    The registry does no locking of its own; callers serialize writers
    (see ScanSession).
    """

    def __init__(self):
        self._index: Dict[Digest, int] = {}
        self._digests: List[Digest] = []
        self._ref_counts: List[int] = []
        self._distinct_hist = np.zeros(PREFIX_BUCKETS, dtype=np.uint64)
        self._occurrence_hist = np.zeros(PREFIX_BUCKETS, dtype=np.uint64)
        self._total_occurrences = 0

    def add(self, digest: Digest) -> int:
        """
        Record one occurrence of a digest.

        Args:
            digest: 32-byte chunk digest

        Returns:
            Dense index of the digest (newly allocated on first sight)
        """
        index = self._index.get(digest)
        if index is None and len(digest) != DIGEST_SIZE:
            raise ValueError(f"digest must be {DIGEST_SIZE} bytes, got {len(digest)}")
        bucket = prefix_bucket(digest)
        if index is None:
            index = len(self._digests)
            self._index[digest] = index
            self._digests.append(digest)
            self._ref_counts.append(1)
            self._distinct_hist[bucket] += 1
        else:
            self._ref_counts[index] += 1
        self._occurrence_hist[bucket] += 1
        self._total_occurrences += 1
        return index

    def count(self) -> int:
        """Number of distinct digests."""
        return len(self._digests)

    def __len__(self) -> int:
        return len(self._digests)

    def __contains__(self, digest: object) -> bool:
        return digest in self._index

    @property
    def total_occurrences(self) -> int:
        """Number of add() calls so far."""
        return self._total_occurrences

    def index_of(self, digest: Digest) -> Optional[int]:
        return self._index.get(digest)

    def digest_at(self, index: int) -> Digest:
        return self._digests[index]

    def reference_count(self, index: int) -> int:
        return self._ref_counts[index]

    def iter_entries(self, prefix: Optional[str] = None) -> Iterator[Tuple[int, Digest, int]]:
        """
        Iterate ``(index, digest, count)`` in dense-index order.

        Args:
            prefix: Optional lowercase hex prefix the digest must start with
        """
        for index, digest in enumerate(self._digests):
            if prefix and not digest.hex().startswith(prefix):
                continue
            yield index, digest, self._ref_counts[index]

    def top_by_reference_count(self, n: int) -> List[DigestOccurrence]:
        """
        Most referenced digests, count descending.

        Equal counts are ordered by dense index ascending.
        """
        if n <= 0 or not self._digests:
            return []
        counts = np.asarray(self._ref_counts, dtype=np.int64)
        indices = np.arange(len(counts))
        # lexsort sorts by the last key first
        order = np.lexsort((indices, -counts))[:n]
        return [
            DigestOccurrence(self._digests[i], int(i), int(counts[i]))
            for i in order
        ]

    @property
    def distinct_histogram(self) -> np.ndarray:
        """Copy of the per-prefix distinct digest counts."""
        return self._distinct_hist.copy()

    @property
    def occurrence_histogram(self) -> np.ndarray:
        """Copy of the per-prefix occurrence counts."""
        return self._occurrence_hist.copy()
