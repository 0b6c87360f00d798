"""Tests for the command-line interface and CSV export."""

import csv
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from finocr.cli import (
    _collect_overrides,
    _find_documents,
    _print_summary,
    _write_csv,
    extract_single,
    main,
    process_folder,
)
from finocr.ocr.results import ExtractError, ExtractResult, ExtractStats, PageResult
from finocr.utils.config import AppConfig
from finocr.utils.errors import DocumentError, MissingDependencyError

_EXTENSIONS = AppConfig().input.supported_extensions


def _make_result(errors: list[ExtractError] | None = None) -> ExtractResult:
    """Create a two-page ExtractResult for testing."""
    pages = [
        PageResult(1, True, False, "Statement of account", confidence="high"),
        PageResult(2, False, True, "Closing balance 310.00", 87.5, "ocr"),
    ]
    return ExtractResult(
        num_pages=2,
        pages=pages,
        full_text="Statement of account\n\nClosing balance 310.00",
        errors=errors or [],
        stats=ExtractStats(
            time_ms=420, pages_ocrd=1, concurrency=2, digital_pages=1, scanned_pages=1
        ),
    )


class TestFindDocuments:
    """Tests for document discovery."""

    def test_find_supported_files(self, tmp_path: Path) -> None:
        (tmp_path / "doc1.pdf").touch()
        (tmp_path / "scan.png").touch()
        (tmp_path / "readme.txt").touch()
        files = _find_documents(tmp_path, _EXTENSIONS)
        assert [f.name for f in files] == ["doc1.pdf", "scan.png"]

    def test_find_no_documents(self, tmp_path: Path) -> None:
        (tmp_path / "readme.txt").touch()
        assert _find_documents(tmp_path, _EXTENSIONS) == []

    def test_find_uppercase_extensions(self, tmp_path: Path) -> None:
        (tmp_path / "STATEMENT.PDF").touch()
        assert len(_find_documents(tmp_path, _EXTENSIONS)) == 1


class TestCollectOverrides:
    """Tests for turning CLI flags into extraction options."""

    def test_only_given_flags(self) -> None:
        args = MagicMock(spec=["lang", "dpi", "debug", "deskew"])
        args.lang = ["eng", "fra"]
        args.dpi = 200
        args.debug = False
        args.deskew = True

        overrides = _collect_overrides(args)

        assert overrides == {
            "languages": ["eng", "fra"],
            "dpi": 200,
            "preprocess": {"deskew": True},
        }


class TestWriteCsv:
    """Tests for CSV writing."""

    def test_write_csv_content(self, tmp_path: Path) -> None:
        rows = [
            {
                "filename": "statement.pdf",
                "status": "success",
                "num_pages": 2,
                "pages_ocrd": 1,
                "error": None,
            }
        ]
        output = tmp_path / "results.csv"
        _write_csv(rows, output)

        with open(output) as f:
            records = list(csv.DictReader(f))
        assert len(records) == 1
        assert records[0]["filename"] == "statement.pdf"
        assert records[0]["pages_ocrd"] == "1"

    def test_write_csv_empty_results(self, tmp_path: Path) -> None:
        output = tmp_path / "results.csv"
        _write_csv([], output)
        assert not output.exists()

    def test_write_csv_creates_parent_dirs(self, tmp_path: Path) -> None:
        output = tmp_path / "subdir" / "results.csv"
        _write_csv([{"filename": "a.pdf", "status": "success"}], output)
        assert output.exists()

    def test_csv_meta_columns_first(self, tmp_path: Path) -> None:
        output = tmp_path / "results.csv"
        _write_csv([{"status": "failed", "filename": "a.pdf"}], output)

        with open(output) as f:
            headers = next(csv.reader(f))
        assert headers[:2] == ["filename", "status"]


class TestPrintSummary:
    """Tests for summary printing."""

    def test_print_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        summary = {"total": 5, "successful": 4, "failed": 1}
        _print_summary(summary, Path("results.csv"))
        captured = capsys.readouterr()
        assert "Total:      5" in captured.out
        assert "Successful: 4" in captured.out
        assert "Failed:     1" in captured.out
        assert "results.csv" in captured.out


class TestProcessFolder:
    """Tests for batch folder processing."""

    @patch("finocr.cli.DocumentProcessor")
    def test_process_folder_success(
        self, mock_processor_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_processor = mock_processor_cls.return_value
        mock_processor.extract_from_file = AsyncMock(return_value=_make_result())
        (tmp_path / "doc1.pdf").touch()
        (tmp_path / "doc2.png").touch()
        output_csv = tmp_path / "out" / "output.csv"

        summary = process_folder(tmp_path, output_csv, AppConfig())

        assert summary == {"total": 2, "successful": 2, "failed": 0}
        with open(output_csv) as f:
            rows = list(csv.DictReader(f))
        assert [r["status"] for r in rows] == ["success", "success"]
        assert rows[0]["scanned_pages"] == "1"
        mock_processor.temp_files.shutdown.assert_called_once()

    @patch("finocr.cli.DocumentProcessor")
    def test_process_folder_with_failures(
        self, mock_processor_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_processor = mock_processor_cls.return_value
        mock_processor.extract_from_file = AsyncMock(
            side_effect=[
                _make_result([ExtractError("OCR timed out", page=2)]),
                DocumentError("Cannot open PDF"),
            ]
        )
        (tmp_path / "a.pdf").touch()
        (tmp_path / "b.pdf").touch()
        output_csv = tmp_path / "output.csv"

        summary = process_folder(tmp_path, output_csv, AppConfig())

        assert summary["successful"] == 1
        assert summary["failed"] == 1
        with open(output_csv) as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["status"] == "partial"
        assert rows[0]["error"] == "page 2: OCR timed out"
        assert rows[1]["status"] == "failed"
        assert "Cannot open PDF" in rows[1]["error"]

    def test_process_folder_empty(self, tmp_path: Path) -> None:
        summary = process_folder(tmp_path, tmp_path / "output.csv", AppConfig())
        assert summary["total"] == 0
        assert not (tmp_path / "output.csv").exists()

    @patch("finocr.cli.DocumentProcessor")
    def test_process_folder_verbose(
        self,
        mock_processor_cls: MagicMock,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_processor_cls.return_value.extract_from_file = AsyncMock(
            return_value=_make_result()
        )
        (tmp_path / "doc1.pdf").touch()

        process_folder(tmp_path, tmp_path / "output.csv", AppConfig(), verbose=True)

        assert "Processing [1/1]" in capsys.readouterr().out


class TestExtractSingle:
    """Tests for single file extraction."""

    @patch("finocr.cli.DocumentProcessor")
    def test_extract_single_returns_dict(
        self, mock_processor_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_processor = mock_processor_cls.return_value
        mock_processor.process.return_value = _make_result()
        doc_path = tmp_path / "statement.pdf"
        doc_path.touch()

        result = extract_single(doc_path, AppConfig(), {"dpi": 200})

        assert result["filename"] == "statement.pdf"
        assert result["num_pages"] == 2
        assert result["pages"][1]["char_count"] == 22
        mock_processor.process.assert_called_once_with(doc_path, {"dpi": 200})
        mock_processor.temp_files.shutdown.assert_called_once()

    @patch("finocr.cli.DocumentProcessor")
    def test_verbose_adds_progress_callback(
        self, mock_processor_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_processor = mock_processor_cls.return_value
        mock_processor.process.return_value = _make_result()

        extract_single(tmp_path / "a.pdf", AppConfig(), verbose=True)

        options = mock_processor.process.call_args.args[1]
        assert callable(options["progress_callback"])

    @patch("finocr.cli.DocumentProcessor")
    def test_temp_files_released_on_error(
        self, mock_processor_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_processor = mock_processor_cls.return_value
        mock_processor.process.side_effect = DocumentError("broken")

        with pytest.raises(DocumentError):
            extract_single(tmp_path / "a.pdf", AppConfig())
        mock_processor.temp_files.shutdown.assert_called_once()


class TestCLIMain:
    """Tests for the CLI argument parser and main entry point."""

    def test_no_command_shows_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0

    def test_batch_nonexistent_directory(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["batch", "/nonexistent/path", "--skip-checks"])
        assert exc_info.value.code == 1
        assert "not a directory" in capsys.readouterr().err

    def test_extract_nonexistent_file(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["extract", "/nonexistent/file.pdf", "--skip-checks"])
        assert exc_info.value.code == 1
        assert "does not exist" in capsys.readouterr().err

    @patch("finocr.cli.extract_single")
    def test_out_of_range_option_exits_1(
        self,
        mock_extract: MagicMock,
        fake_pdf: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["extract", str(fake_pdf), "--skip-checks", "-c", "0"])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Error: invalid extraction options" in err
        assert "concurrency" in err
        mock_extract.assert_not_called()

    @patch("finocr.cli.SystemDependencyChecker")
    def test_check_command_success(
        self, mock_checker_cls: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["check"])
        mock_checker_cls.return_value.check_dependencies.assert_called_once()
        assert "All required" in capsys.readouterr().out

    @patch("finocr.cli.SystemDependencyChecker")
    def test_missing_dependency_exits_2(
        self, mock_checker_cls: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        mock_checker_cls.return_value.check_dependencies.side_effect = (
            MissingDependencyError("Missing system dependencies: Tesseract OCR")
        )
        with pytest.raises(SystemExit) as exc_info:
            main(["check"])
        assert exc_info.value.code == 2
        assert "Tesseract OCR" in capsys.readouterr().err

    @patch("finocr.cli.SystemDependencyChecker")
    @patch("finocr.cli.process_folder")
    def test_batch_runs_dependency_check(
        self, mock_pf: MagicMock, mock_checker_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_pf.return_value = {"total": 1, "successful": 1, "failed": 0}
        main(["batch", str(tmp_path)])
        mock_checker_cls.return_value.check_dependencies.assert_called_once()
        mock_pf.assert_called_once()

    @patch("finocr.cli.process_folder")
    def test_batch_with_options(self, mock_pf: MagicMock, tmp_path: Path) -> None:
        mock_pf.return_value = {"total": 1, "successful": 1, "failed": 0}
        output = tmp_path / "out.csv"
        main(
            [
                "batch",
                str(tmp_path),
                "-o",
                str(output),
                "-c",
                "2",
                "--fallback",
                "prefer-longer",
                "--binarize",
                "--skip-checks",
                "-v",
            ]
        )
        args = mock_pf.call_args.args
        assert args[1] == output
        assert args[3] == {
            "concurrency": 2,
            "ocr_fallback": "prefer-longer",
            "preprocess": {"binarize": True},
        }
        assert args[4] is True

    @patch("finocr.cli.extract_single")
    def test_extract_writes_json(
        self, mock_extract: MagicMock, tmp_path: Path, fake_pdf: Path
    ) -> None:
        mock_extract.return_value = {"filename": fake_pdf.name, "num_pages": 1}
        output = tmp_path / "out" / "result.json"

        main(["extract", str(fake_pdf), "-o", str(output), "--skip-checks"])

        assert json.loads(output.read_text())["num_pages"] == 1

    @patch("finocr.cli.extract_single")
    def test_extract_prints_json(
        self,
        mock_extract: MagicMock,
        fake_pdf: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_extract.return_value = {"filename": fake_pdf.name}
        main(["extract", str(fake_pdf), "--skip-checks", "-l", "eng", "-l", "deu"])
        assert json.loads(capsys.readouterr().out) == {"filename": fake_pdf.name}
        assert mock_extract.call_args.args[2] == {"languages": ["eng", "deu"]}

    @patch("finocr.cli.extract_single")
    def test_extract_failure_exits_1(
        self,
        mock_extract: MagicMock,
        fake_pdf: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_extract.side_effect = DocumentError("Cannot open PDF")
        with pytest.raises(SystemExit) as exc_info:
            main(["extract", str(fake_pdf), "--skip-checks"])
        assert exc_info.value.code == 1
        assert "Cannot open PDF" in capsys.readouterr().err
