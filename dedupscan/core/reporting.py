"""Report generation for scan results."""

import json
from typing import Any, Dict, Optional

import numpy as np
from rich.console import Console
from rich.table import Table

from .scanner import ScanResult
from .session import ScanSession


class NumpyJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types."""
    def default(self, obj):
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        return super().default(obj)


def histogram_summary(histogram: np.ndarray) -> Dict[str, Any]:
    """Occupancy statistics of a 65536-bucket prefix histogram."""
    occupied = histogram[histogram > 0]
    return {
        "total": int(histogram.sum()),
        "occupied_buckets": int(occupied.size),
        "min": int(occupied.min()) if occupied.size else 0,
        "max": int(histogram.max()) if histogram.size else 0,
        "mean": float(histogram.mean()) if histogram.size else 0.0,
        "std": float(histogram.std()) if histogram.size else 0.0,
    }


class Reporter:
    """Render reports over a (possibly still growing) scan session."""

    def __init__(self, session: ScanSession):
        self.session = session

    def render_occurrences(self, top_n: int) -> str:
        """Top-N most referenced digests as ``<hex> (<index>): <count>`` lines."""
        lines = [f"Top {top_n} Digest occurrences:"]
        for entry in self.session.top_digests(top_n):
            lines.append(f"{entry.hex} ({entry.index}): {entry.count}")
        return "\n".join(lines)

    def render_dedup(self, top_n: int) -> str:
        """Top-N files by dedup ratio as ``<path>: <ratio>`` lines."""
        lines = [f"Top {top_n} highest dedup ratio files:"]
        for path, ratio in self.session.top_files(top_n):
            lines.append(f"{path}: {ratio:.2f}")
        return "\n".join(lines)

    def render_file_references(self) -> str:
        lines = ["File references for each digest:"]
        for path, refs in sorted(self.session.all_file_references()):
            lines.append(f"{path}: " + " ".join(str(r) for r in refs))
        return "\n".join(lines)

    def render_histogram_summary(self) -> str:
        distinct, occurrences = self.session.prefix_histograms()
        lines = ["Digest prefix histograms (65536 buckets):"]
        for label, hist in (("distinct", distinct), ("occurrences", occurrences)):
            s = histogram_summary(hist)
            lines.append(
                f"  {label:12} total={s['total']} occupied={s['occupied_buckets']} "
                f"min={s['min']} max={s['max']} mean={s['mean']:.2f} std={s['std']:.2f}"
            )
        return "\n".join(lines)

    def render_summary(self, result: Optional[ScanResult] = None) -> str:
        stats = self.session.stats()
        lines = []
        if result is not None:
            lines.append(
                f"Scanned {result.files_found} index files in {result.elapsed:.2f}s "
                f"({result.files_processed} processed, {result.failed_count} failed)"
            )
            for path, error in result.failures:
                lines.append(f"  failed: {path}: {error}")
        lines.append(f"Total files: {stats['total_files']}")
        lines.append(f"Total references: {stats['total_references']}")
        lines.append(f"Total unique digests: {stats['total_unique_digests']}")
        return "\n".join(lines)

    def build_report(self, result: Optional[ScanResult] = None,
                     top_chunks: int = 0, top_files: int = 0,
                     include_histograms: bool = False) -> Dict[str, Any]:
        report: Dict[str, Any] = {"stats": self.session.stats()}
        if result is not None:
            report["scan"] = result.to_dict()
        if top_chunks > 0:
            report["top_chunks"] = [
                {"digest": e.hex, "digest_index": e.index, "count": e.count}
                for e in self.session.top_digests(top_chunks)
            ]
        if top_files > 0:
            report["top_files"] = [
                {"filename": path, "dedup_ratio": round(ratio, 4)}
                for path, ratio in self.session.top_files(top_files)
            ]
        if include_histograms:
            distinct, occurrences = self.session.prefix_histograms()
            report["histograms"] = {
                "distinct": histogram_summary(distinct),
                "occurrences": histogram_summary(occurrences),
            }
        return report

    def render_json(self, result: Optional[ScanResult] = None,
                    top_chunks: int = 0, top_files: int = 0,
                    include_histograms: bool = False) -> str:
        report = self.build_report(result, top_chunks, top_files, include_histograms)
        return json.dumps(report, indent=2, cls=NumpyJSONEncoder)

    def print_tables(self, console: Console, top_chunks: int = 0, top_files: int = 0) -> None:
        """Rich table rendering of the top-N reports for an interactive terminal."""
        if top_chunks > 0:
            table = Table(title=f"Top {top_chunks} digest occurrences")
            table.add_column("Digest", style="cyan", no_wrap=True)
            table.add_column("Index", justify="right")
            table.add_column("Count", justify="right", style="bold")
            for entry in self.session.top_digests(top_chunks):
                table.add_row(entry.hex, str(entry.index), str(entry.count))
            console.print(table)

        if top_files > 0:
            table = Table(title=f"Top {top_files} highest dedup ratio files")
            table.add_column("File", style="cyan")
            table.add_column("Ratio", justify="right", style="bold")
            for path, ratio in self.session.top_files(top_files):
                table.add_row(path, f"{ratio:.2f}")
            console.print(table)

