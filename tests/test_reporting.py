"""
Tests for text, JSON and table reports.
"""

import io
import json

import numpy as np
import pytest
from rich.console import Console

from dedupscan.core.digests import PREFIX_BUCKETS
from dedupscan.core.reporting import NumpyJSONEncoder, Reporter, histogram_summary
from dedupscan.core.scanner import ScanResult
from dedupscan.core.session import ScanSession


@pytest.fixture
def session(make_digest):
    """Session holding one.fidx [A, B, A, C] and two.didx [C, D]."""
    session = ScanSession()
    a, b, c, d = (make_digest(x) for x in "ABCD")
    session.record_index("one.fidx", [a, b, a, c])
    session.record_index("two.didx", [c, d])
    return session


class TestTextReports:
    """Line-oriented console output."""

    def test_render_occurrences(self, session, make_digest):
        lines = Reporter(session).render_occurrences(2).splitlines()

        assert lines[0] == "Top 2 Digest occurrences:"
        assert lines[1] == f"{make_digest('A').hex()} (0): 2"
        assert lines[2] == f"{make_digest('C').hex()} (2): 2"
        assert len(lines) == 3

    def test_render_dedup(self, session):
        lines = Reporter(session).render_dedup(5).splitlines()

        assert lines == [
            "Top 5 highest dedup ratio files:",
            "one.fidx: 1.33",
            "two.didx: 1.00",
        ]

    def test_render_file_references(self, session):
        lines = Reporter(session).render_file_references().splitlines()

        assert lines == [
            "File references for each digest:",
            "one.fidx: 0 1 0 2",
            "two.didx: 2 3",
        ]

    def test_render_summary(self, session):
        result = ScanResult(root="/store", files_found=3, files_processed=2,
                            failures=[("/store/bad.fidx", "invalid magic")])

        lines = Reporter(session).render_summary(result).splitlines()

        assert lines[0].startswith("Scanned 3 index files")
        assert "1 failed" in lines[0]
        assert lines[1] == "  failed: /store/bad.fidx: invalid magic"
        assert lines[-3:] == [
            "Total files: 2",
            "Total references: 6",
            "Total unique digests: 4",
        ]

    def test_summary_of_empty_session(self):
        lines = Reporter(ScanSession()).render_summary().splitlines()

        assert lines == ["Total files: 0", "Total references: 0", "Total unique digests: 0"]

    def test_histogram_summary_text(self, session):
        text = Reporter(session).render_histogram_summary()

        assert "distinct" in text
        assert "total=4" in text
        assert "total=6" in text


class TestHistogramSummary:
    """Tests for histogram_summary."""

    def test_summary_values(self):
        hist = np.zeros(PREFIX_BUCKETS, dtype=np.uint64)
        hist[10] = 3
        hist[20] = 1

        summary = histogram_summary(hist)

        assert summary["total"] == 4
        assert summary["occupied_buckets"] == 2
        assert summary["min"] == 1
        assert summary["max"] == 3
        assert summary["mean"] == pytest.approx(4 / PREFIX_BUCKETS)

    def test_empty_histogram(self):
        summary = histogram_summary(np.zeros(PREFIX_BUCKETS, dtype=np.uint64))

        assert summary["total"] == 0
        assert summary["occupied_buckets"] == 0
        assert summary["min"] == 0


class TestJsonReport:
    """Structured report output."""

    def test_build_report(self, session, make_digest):
        result = ScanResult(root="/store", files_found=2, files_processed=2)

        report = Reporter(session).build_report(result, top_chunks=1, top_files=1,
                                                include_histograms=True)

        assert report["stats"]["total_unique_digests"] == 4
        assert report["scan"]["files_processed"] == 2
        assert report["top_chunks"] == [
            {"digest": make_digest("A").hex(), "digest_index": 0, "count": 2}
        ]
        assert report["top_files"] == [{"filename": "one.fidx", "dedup_ratio": 1.3333}]
        assert report["histograms"]["occurrences"]["total"] == 6

    def test_optional_sections_omitted(self, session):
        report = Reporter(session).build_report()

        assert set(report) == {"stats"}

    def test_render_json_is_valid(self, session):
        data = json.loads(Reporter(session).render_json(top_chunks=2, include_histograms=True))

        assert len(data["top_chunks"]) == 2
        assert data["histograms"]["distinct"]["total"] == 4

    def test_numpy_encoder(self):
        payload = {"a": np.uint64(5), "b": np.float32(0.5), "c": np.arange(3)}

        assert json.loads(json.dumps(payload, cls=NumpyJSONEncoder)) == {
            "a": 5, "b": 0.5, "c": [0, 1, 2]
        }


class TestTables:
    """Rich table rendering."""

    def test_print_tables(self, session):
        buffer = io.StringIO()
        console = Console(file=buffer, width=200, force_terminal=False)

        Reporter(session).print_tables(console, top_chunks=2, top_files=2)

        output = buffer.getvalue()
        assert "Top 2 digest occurrences" in output
        assert "one.fidx" in output
        assert "1.33" in output

    def test_print_nothing_when_disabled(self, session):
        buffer = io.StringIO()

        Reporter(session).print_tables(Console(file=buffer), 0, 0)

        assert buffer.getvalue() == ""
