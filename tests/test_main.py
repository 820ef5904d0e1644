"""Tests for main.py CLI functionality."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from photo_ingest.core.exceptions import SystemicError
from photo_ingest.core.models import (
    BatchResult,
    ItemFailure,
    ItemSkipped,
    ProgressEvent,
    SourceReference,
)
from photo_ingest.main import LoggingProgressListener, build_parser, main


@pytest.fixture(autouse=True)
def bucket_env(monkeypatch):
    monkeypatch.setenv("PHOTO_INGEST_BUCKET", "test-bucket")


def _exit_code(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestParser:
    """Tests for argument parsing."""

    def test_ingest_link(self):
        args = build_parser().parse_args(["ingest", "--event-id", "42", "--link", "https://x"])
        assert args.command == "ingest"
        assert args.event_id == "42"
        assert args.files is None
        assert args.branding is None
        assert not args.skip_faces

    def test_ingest_files(self):
        args = build_parser().parse_args(
            ["ingest", "--event-id", "42", "--files", "a.jpg", "b.png", "--branding", "off"]
        )
        assert args.files == ["a.jpg", "b.png"]
        assert args.branding == "off"

    def test_link_and_files_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(
                ["ingest", "--event-id", "42", "--link", "https://x", "--files", "a.jpg"]
            )

    def test_a_source_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["ingest", "--event-id", "42"])


class TestMainCLI:
    """Tests for the main CLI functionality."""

    def test_main_with_no_args_shows_help(self):
        with patch("argparse.ArgumentParser.print_help") as mock_help:
            assert _exit_code([]) == 1
        mock_help.assert_called_once()

    def test_main_version_command(self):
        with patch("builtins.print") as mock_print:
            assert _exit_code(["version"]) == 0
        mock_print.assert_any_call("Photo Ingest CLI")
        mock_print.assert_any_call("Version 0.1.0")
        mock_print.assert_any_call("Event photo ingestion with watermarking and face indexing")

    def test_ingest_prints_result_and_exits_zero(self, capsys):
        result = BatchResult(total=1)
        result.add(ItemSkipped(source_id="a", file_name="a.jpg"))

        with patch("photo_ingest.main.run_ingest", new=AsyncMock(return_value=result)) as mock_run:
            code = _exit_code(
                ["ingest", "--event-id", "42", "--link", "https://drive.google.com/file/d/abc/view",
                 "--branding", "on", "--concurrency", "3", "--skip-faces"]
            )

        assert code == 0
        _, request = mock_run.call_args.args
        assert request.event_id == "42"
        assert request.branding_override is True
        assert mock_run.call_args.kwargs == {"concurrency": 3, "index_faces": False}
        printed = json.loads(capsys.readouterr().out)
        assert printed["skipped"][0]["file_name"] == "a.jpg"

    def test_ingest_with_failures_exits_two(self):
        result = BatchResult(total=1)
        result.add(ItemFailure(source_id="a", reason="boom"))

        with patch("photo_ingest.main.run_ingest", new=AsyncMock(return_value=result)):
            assert _exit_code(["ingest", "--event-id", "42", "--files", "a.jpg"]) == 2

    def test_systemic_failure_exits_one(self):
        failing = AsyncMock(side_effect=SystemicError("collection unavailable"))
        with patch("photo_ingest.main.run_ingest", new=failing):
            assert _exit_code(["ingest", "--event-id", "42", "--files", "a.jpg"]) == 1

    def test_missing_bucket_exits_one(self, monkeypatch):
        monkeypatch.delenv("PHOTO_INGEST_BUCKET")
        monkeypatch.delenv("S3_BUCKET_NAME", raising=False)
        assert _exit_code(["ingest", "--event-id", "42", "--files", "a.jpg"]) == 1

    def test_list_prints_references(self, capsys):
        references = [SourceReference(name="x.jpg", url="https://drive.google.com/uc?id=x")]
        with patch("photo_ingest.main.run_list", new=AsyncMock(return_value=references)):
            assert _exit_code(["list", "--link", "https://drive.google.com/file/d/x/view"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed == [{"name": "x.jpg", "url": "https://drive.google.com/uc?id=x"}]

    def test_debug_flag_enables_debug_logging(self):
        result = BatchResult(total=0)
        with patch("photo_ingest.main.run_ingest", new=AsyncMock(return_value=result)):
            with patch("photo_ingest.main.set_debug_logging") as mock_debug:
                _exit_code(["ingest", "--event-id", "1", "--files", "a.jpg", "--debug"])
        mock_debug.assert_called_once()


def test_logging_progress_listener():
    listener = LoggingProgressListener()
    with patch.object(listener, "_logger") as mock_logger:
        listener.on_progress(
            ProgressEvent(completed=2, total=5, current_item="a.jpg", outcome="success")
        )
    mock_logger.info.assert_called_once_with("[2/5] a.jpg: success")
