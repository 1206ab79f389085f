"""
Tests for the command-line interface.
"""

import json

import pytest
import yaml
from click.testing import CliRunner

from dedupscan import __version__
from dedupscan.cli import cli
from dedupscan.config import ScanConfig


@pytest.fixture
def runner():
    return CliRunner()


class TestScanCommand:
    """Tests for `dedupscan scan`."""

    def test_missing_directory_exits_1(self, runner):
        result = runner.invoke(cli, ["scan"])

        assert result.exit_code == 1
        assert "Usage: dedupscan scan" in result.output

    def test_unwalkable_root_exits_1(self, runner, tmp_path):
        result = runner.invoke(cli, ["scan", "--no-progress", str(tmp_path / "missing")])

        assert result.exit_code == 1
        assert "Scan error" in result.output

    def test_summary_only(self, runner, sample_store):
        result = runner.invoke(cli, ["scan", "--no-progress", str(sample_store)])

        assert result.exit_code == 0, result.output
        assert "Total files: 2" in result.output
        assert "Total unique digests: 4" in result.output
        assert "Digest occurrences" not in result.output

    def test_top_reports(self, runner, sample_store, make_digest):
        result = runner.invoke(cli, [
            "scan", "--no-progress", "--top-chunks", "1", "--top-files", "2", str(sample_store),
        ])

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        header = lines.index("Top 1 Digest occurrences:")
        # A and C both occur twice; A was registered first
        assert lines[header + 1].split(" ")[0] in {make_digest("A").hex(), make_digest("C").hex()}
        assert lines[header + 1].endswith(": 2")
        assert "Top 2 highest dedup ratio files:" in lines
        assert any(line.endswith("drive.img.fidx: 1.33") for line in lines)

    def test_json_output(self, runner, sample_store):
        result = runner.invoke(cli, ["scan", "--json", "--top-chunks", "2", "--histogram",
                                     str(sample_store)])

        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["stats"] == {
            "total_unique_digests": 4,
            "total_files": 2,
            "total_references": 6,
        }
        assert len(report["top_chunks"]) == 2
        assert report["scan"]["files_found"] == 2
        assert report["histograms"]["distinct"]["total"] == 4

    def test_show_refs(self, runner, sample_store):
        result = runner.invoke(cli, ["scan", "--no-progress", "--show-refs", str(sample_store)])

        assert result.exit_code == 0, result.output
        assert "File references for each digest:" in result.output
        assert any(line.endswith("root.pxar.didx: 2 3") or line.endswith("root.pxar.didx: 0 1")
                   for line in result.output.splitlines())

    def test_failed_file_reported(self, runner, sample_store):
        (sample_store / "vm" / "100" / "broken.fidx").write_bytes(b"\x01" * 10)

        result = runner.invoke(cli, ["scan", "--no-progress", str(sample_store)])

        assert result.exit_code == 0, result.output
        assert "1 failed" in result.output
        assert "broken.fidx" in result.output

    def test_config_file_values_used(self, runner, sample_store, tmp_path):
        config_path = tmp_path / "scan.yml"
        ScanConfig(top_files=1, show_progress=False).save_to_file(config_path)

        result = runner.invoke(cli, ["scan", "--config", str(config_path), str(sample_store)])

        assert result.exit_code == 0, result.output
        assert "Top 1 highest dedup ratio files:" in result.output

    def test_invalid_option_value_exits_1(self, runner, sample_store):
        result = runner.invoke(cli, ["scan", "--workers", "0", str(sample_store)])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_table_output(self, runner, sample_store):
        result = runner.invoke(cli, ["scan", "--no-progress", "--table", "--top-files", "2",
                                     str(sample_store)])

        assert result.exit_code == 0, result.output
        assert "Top 2 highest dedup ratio files" in result.output


class TestInspectCommand:
    """Tests for `dedupscan inspect`."""

    def test_inspect_fidx(self, runner, tmp_path, fidx_writer, make_digest):
        digests = [make_digest(i) for i in range(4)]
        path = fidx_writer(tmp_path / "drive.img.fidx", digests)

        result = runner.invoke(cli, ["inspect", str(path)])

        assert result.exit_code == 0, result.output
        assert "Type: fidx" in result.output
        assert f"UUID: {bytes(range(16)).hex()}" in result.output
        assert "ChunkSize: 4194304" in result.output
        assert "Num Chunks: 4" in result.output
        assert f"Last digest: {digests[-1].hex()}" in result.output

    def test_inspect_didx(self, runner, tmp_path, didx_writer, make_digest):
        path = didx_writer(tmp_path / "root.pxar.didx", [make_digest(1)], chunk_len=500)

        result = runner.invoke(cli, ["inspect", str(path)])

        assert result.exit_code == 0, result.output
        assert "Type: didx" in result.output
        assert "Size: 500" in result.output
        assert "ChunkSize" not in result.output

    def test_inspect_invalid(self, runner, tmp_path):
        path = tmp_path / "bad.fidx"
        path.write_bytes(b"\x00" * 4096)

        result = runner.invoke(cli, ["inspect", str(path)])

        assert result.exit_code == 1


class TestConfigCommands:
    """Tests for `dedupscan config`."""

    def test_init_and_show(self, runner, tmp_path):
        path = tmp_path / "generated.yml"

        result = runner.invoke(cli, ["config", "init", "--path", str(path)])

        assert result.exit_code == 0, result.output
        assert yaml.safe_load(path.read_text()) == ScanConfig().to_dict()

        shown = runner.invoke(cli, ["config", "show", "--path", str(path)])
        assert shown.exit_code == 0, shown.output
        assert "queue_size" in shown.output

    def test_init_keeps_existing_file(self, runner, tmp_path):
        path = tmp_path / "existing.yml"
        path.write_text("workers: 2\n")

        result = runner.invoke(cli, ["config", "init", "--path", str(path)], input="n\n")

        assert result.exit_code == 0
        assert path.read_text() == "workers: 2\n"


def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert __version__ in result.output
