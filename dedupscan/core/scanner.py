"""
Concurrent scanning of a datastore directory tree.

The calling thread walks the tree and feeds index file paths into a bounded
queue; a fixed pool of worker threads decodes each file outside the session
lock and then registers its digests while holding the write lock.
"""

import logging
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Tuple

from .errors import ScanError, WalkError, is_per_file_error
from .index_format import PathLike, is_index_file, read_index_file
from .session import ScanSession

if TYPE_CHECKING:
    from ..config import ScanConfig

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4
DEFAULT_QUEUE_SIZE = 100
CHUNK_DIR_NAME = ".chunks"

# closes the queue for one worker
_STOP = None

FileDoneCallback = Callable[[str, Optional[Exception]], None]


@dataclass
class ScanResult:
    """Outcome of one scan run."""

    root: str
    files_found: int = 0
    files_processed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    elapsed: float = 0.0
    unique_digests: int = 0
    total_references: int = 0

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "files_found": self.files_found,
            "files_processed": self.files_processed,
            "failed": [{"path": p, "error": e} for p, e in self.failures],
            "elapsed": round(self.elapsed, 3),
            "unique_digests": self.unique_digests,
            "total_references": self.total_references,
        }


def iter_index_files(root: PathLike, chunk_dir_name: str = CHUNK_DIR_NAME) -> Iterator[str]:
    """
    Yield .fidx/.didx files below root, skipping chunk store directories.

    Raises:
        WalkError: if the traversal itself fails (missing or unreadable directory)
    """
    root = os.fspath(root)
    if os.path.isfile(root):
        if is_index_file(root):
            yield root
        return

    def _on_error(err: OSError) -> None:
        raise WalkError(f"cannot walk {err.filename}: {err.strerror or err}", root=root, cause=err)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        # prune in place so os.walk never descends into the chunk store
        dirnames[:] = sorted(d for d in dirnames if d != chunk_dir_name)
        for name in sorted(filenames):
            if is_index_file(name):
                yield os.path.join(dirpath, name)


class IndexScanner:
    """Walks a directory tree and fills a ScanSession from its index files."""

    def __init__(
        self,
        session: ScanSession,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        chunk_dir_name: str = CHUNK_DIR_NAME,
        on_file_done: Optional[FileDoneCallback] = None
    ):
        """
        Initialize scanner.

        Args:
            session: Session receiving the decoded digests
            workers: Number of decoding threads
            queue_size: Capacity of the path queue (walker blocks when full)
            chunk_dir_name: Directory name excluded from the walk
            on_file_done: Called once per queued path with the error, if any
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size}")
        self.session = session
        self.workers = workers
        self.queue_size = queue_size
        self.chunk_dir_name = chunk_dir_name
        self.on_file_done = on_file_done

        self._result_lock = threading.Lock()
        self._result: Optional[ScanResult] = None
        self._unexpected: List[BaseException] = []

    @classmethod
    def from_config(cls, session: ScanSession, config: "ScanConfig",
                    on_file_done: Optional[FileDoneCallback] = None) -> "IndexScanner":
        return cls(
            session,
            workers=config.workers,
            queue_size=config.queue_size,
            chunk_dir_name=config.chunk_dir_name,
            on_file_done=on_file_done,
        )

    def process_file(self, path: str) -> Optional[ScanError]:
        """
        Decode one index file and register its digests.

        Returns:
            The per-file error if the file was skipped, else None
        """
        try:
            index = read_index_file(path)
        except ScanError as e:
            if not is_per_file_error(e):
                raise
            logger.warning(f"Error processing {path}: {e}")
            return e

        logger.debug(f"Processing file: {path}")
        self.session.record_index(path, index.iter_digests())
        return None

    def _worker(self, paths: "queue.Queue[Optional[str]]") -> None:
        while True:
            path = paths.get()
            if path is _STOP:
                break
            error: Optional[Exception] = None
            try:
                error = self.process_file(path)
            except Exception as e:
                # keep draining so the walker never blocks on a full queue
                logger.exception(f"Unexpected failure while processing {path}")
                with self._result_lock:
                    self._unexpected.append(e)
                error = e

            with self._result_lock:
                if error is None:
                    self._result.files_processed += 1
                else:
                    self._result.failures.append((path, str(error)))
            if self.on_file_done is not None:
                try:
                    self.on_file_done(path, error)
                except Exception as e:
                    logger.exception(f"Progress callback failed for {path}")
                    with self._result_lock:
                        self._unexpected.append(e)

    def scan(self, root: PathLike) -> ScanResult:
        """
        Scan a directory tree until every index file has been processed.

        Raises:
            WalkError: if the directory traversal fails
        """
        root = os.fspath(root)
        started = time.time()
        self._result = ScanResult(root=root)
        self._unexpected = []
        paths: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=self.queue_size)

        threads = [
            threading.Thread(target=self._worker, args=(paths,), name=f"dedupscan-worker-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for t in threads:
            t.start()

        logger.info(f"Scanning {root} with {self.workers} workers")
        try:
            for path in iter_index_files(root, self.chunk_dir_name):
                self._result.files_found += 1
                paths.put(path)
        finally:
            for _ in threads:
                paths.put(_STOP)
            for t in threads:
                t.join()

        if self._unexpected:
            raise self._unexpected[0]

        result = self._result
        stats = self.session.stats()
        result.unique_digests = stats["total_unique_digests"]
        result.total_references = stats["total_references"]
        result.elapsed = time.time() - started
        logger.info(
            f"Scan finished: {result.files_processed}/{result.files_found} files, "
            f"{result.failed_count} failed, {result.unique_digests} unique digests"
        )
        return result


def scan_directory(root: PathLike, workers: int = DEFAULT_WORKERS,
                   session: Optional[ScanSession] = None) -> Tuple[ScanSession, ScanResult]:
    """Convenience wrapper: scan root into a (new) session."""
    session = session or ScanSession()
    result = IndexScanner(session, workers=workers).scan(root)
    return session, result
