"""Tests for the command-line interface."""

from pathlib import Path

import pytest
from click.testing import CliRunner
from PIL import Image

from docscan import __version__
from docscan.cli import main


@pytest.fixture
def page_file(outlined_page, tmp_path: Path) -> Path:
    path = tmp_path / "receipt.png"
    Image.fromarray(outlined_page).save(path)
    return path


class TestScanCommand:
    """Test the scan command."""

    def test_writes_png(self, page_file: Path, tmp_path: Path) -> None:
        out_dir = tmp_path / "out"
        result = CliRunner().invoke(main, ['scan', str(page_file), '-o', str(out_dir)])

        assert result.exit_code == 0, result.output
        output = out_dir / "receipt_scan.png"
        assert output.exists()
        assert Image.open(output).mode == "RGBA"

    def test_color_jpeg(self, page_file: Path, tmp_path: Path) -> None:
        out_dir = tmp_path / "out"
        result = CliRunner().invoke(main, [
            'scan', str(page_file), '-o', str(out_dir),
            '--mode', 'color', '--format', 'jpeg', '--quality', '80', '--max-size', '150',
        ])

        assert result.exit_code == 0, result.output
        output = out_dir / "receipt_scan.jpg"
        assert output.exists()
        assert max(Image.open(output).size) == 150

    def test_batch_directory(self, page_file: Path, tmp_path: Path) -> None:
        out_dir = tmp_path / "out"
        result = CliRunner().invoke(
            main, ['scan', str(page_file.parent), '--batch', '-o', str(out_dir)]
        )

        assert result.exit_code == 0, result.output
        assert (out_dir / "receipt_scan.png").exists()

    def test_directory_without_batch_fails(self, page_file: Path, tmp_path: Path) -> None:
        result = CliRunner().invoke(
            main, ['scan', str(page_file.parent), '-o', str(tmp_path / "out")]
        )
        assert result.exit_code == 1

    def test_offset_out_of_range(self, page_file: Path) -> None:
        result = CliRunner().invoke(main, ['scan', str(page_file), '--offset', '101'])
        assert result.exit_code != 0

    def test_bad_file_is_skipped(self, page_file: Path, tmp_path: Path) -> None:
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"nope")
        out_dir = tmp_path / "out"

        result = CliRunner().invoke(main, ['scan', str(broken), str(page_file), '-o', str(out_dir)])

        assert result.exit_code == 0, result.output
        assert (out_dir / "receipt_scan.png").exists()
        assert not (out_dir / "broken_scan.png").exists()


class TestDetectCommand:
    """Test the detect command."""

    def test_prints_corners(self, page_file: Path) -> None:
        result = CliRunner().invoke(main, ['detect', str(page_file)])

        assert result.exit_code == 0, result.output
        assert "top_left:" in result.output
        assert "bottom_right:" in result.output
        assert "method: hull" in result.output
        assert "fallback" not in result.output


def test_version() -> None:
    result = CliRunner().invoke(main, ['--version'])
    assert result.exit_code == 0
    assert __version__ in result.output
