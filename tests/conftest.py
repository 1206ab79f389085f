"""
Shared fixtures for building .fidx/.didx index files in temporary directories.
"""

import hashlib
import logging
import os
import struct
from pathlib import Path
from typing import Callable, Sequence

import pytest

from dedupscan import config as config_module
from dedupscan.core.index_format import ChunkListHeader, ChunkOffsetHeader

CHUNK_SIZE = 4 * 1024 * 1024


def _digest(seed) -> bytes:
    return hashlib.sha256(f"chunk-{seed}".encode()).digest()


@pytest.fixture
def make_digest() -> Callable[[object], bytes]:
    """Deterministic 32-byte digest for any seed value."""
    return _digest


@pytest.fixture
def fidx_writer() -> Callable[..., Path]:
    """Write a chunk-list index: header followed by raw digests."""

    def _write(path: Path, digests: Sequence[bytes], trailing: bytes = b"",
               header: ChunkListHeader = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        header = header or ChunkListHeader(
            uuid=bytes(range(16)),
            ctime=1700000000,
            size=len(digests) * CHUNK_SIZE,
            chunk_size=CHUNK_SIZE,
        )
        path.write_bytes(header.encode() + b"".join(digests) + trailing)
        return path

    return _write


@pytest.fixture
def didx_writer() -> Callable[..., Path]:
    """Write a chunk-offset index: header followed by (offset, digest) records."""

    def _write(path: Path, digests: Sequence[bytes], trailing: bytes = b"",
               chunk_len: int = 65536) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        header = ChunkOffsetHeader(uuid=bytes(range(16)), ctime=1700000000)
        body = b"".join(
            struct.pack("<Q", (i + 1) * chunk_len) + d for i, d in enumerate(digests)
        )
        path.write_bytes(header.encode() + body + trailing)
        return path

    return _write


@pytest.fixture
def sample_store(tmp_path, fidx_writer, didx_writer, make_digest) -> Path:
    """
    A small datastore layout:

        vm/100/drive.img.fidx   [A, B, A, C]
        ct/200/root.pxar.didx   [C, D]
        .chunks/...             index-like files that must be ignored
        vm/100/notes.txt        not an index
    """
    a, b, c, d = (make_digest(x) for x in "ABCD")
    fidx_writer(tmp_path / "vm" / "100" / "drive.img.fidx", [a, b, a, c])
    didx_writer(tmp_path / "ct" / "200" / "root.pxar.didx", [c, d])
    fidx_writer(tmp_path / ".chunks" / "0000" / "decoy.fidx", [make_digest("decoy")])
    (tmp_path / "vm" / "100" / "notes.txt").write_text("not an index")
    return tmp_path


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config files and DEDUPSCAN_* variables out of every test."""
    for name in list(os.environ):
        if name.startswith("DEDUPSCAN_"):
            monkeypatch.delenv(name)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "_config_manager", None)
    yield
    # the CLI installs handlers bound to the runner's temporary streams
    package_logger = logging.getLogger("dedupscan")
    package_logger.handlers.clear()
    package_logger.propagate = True
