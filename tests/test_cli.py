"""Tests for the command line entry point and source resolution."""
from unittest.mock import AsyncMock, patch

import pytest

from autoreel.cli import main
from autoreel.pipeline.runner import PipelineError
from autoreel.utils.ytdlp import find_downloaded_file, is_remote_reference


class TestSourceResolution:

    @pytest.mark.parametrize("reference,expected", [
        ("https://www.youtube.com/watch?v=abc", True),
        ("HTTP://example.com/video.mp4", True),
        ("  https://example.com/v.mp4  ", True),
        ("/home/user/video.mp4", False),
        ("video.mp4", False),
        ("ftp://example.com/video.mp4", False),
    ])
    def test_is_remote_reference(self, reference, expected):
        assert is_remote_reference(reference) is expected

    def test_find_downloaded_file_prefers_mp4(self, tmp_path):
        (tmp_path / "source.webm").write_bytes(b"\x00" * 2000)
        (tmp_path / "source.mp4").write_bytes(b"\x00" * 2000)
        assert find_downloaded_file(tmp_path, "source") == tmp_path / "source.mp4"

    def test_find_downloaded_file_ignores_stubs(self, tmp_path):
        (tmp_path / "source.mp4").write_bytes(b"\x00" * 10)
        assert find_downloaded_file(tmp_path, "source") is None


class TestMain:

    def test_missing_file_exits_1(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main([str(tmp_path / "nope.mp4"), "--work-dir", str(tmp_path / "work")])
        assert exc.value.code == 1

    def test_pipeline_error_exits_1(self, tmp_path):
        source = tmp_path / "flat.mp4"
        source.write_bytes(b"\x00")

        with patch("autoreel.cli.run_highlight_pipeline", new=AsyncMock(side_effect=PipelineError("No scenes detected"))):
            with pytest.raises(SystemExit) as exc:
                main([str(source), "--work-dir", str(tmp_path / "work"), "--no-assemble"])
        assert exc.value.code == 1

    def test_options_reach_pipeline(self, tmp_path):
        source = tmp_path / "match.mp4"
        source.write_bytes(b"\x00")
        run = AsyncMock(side_effect=PipelineError("stop here"))

        with patch("autoreel.cli.run_highlight_pipeline", new=run):
            with pytest.raises(SystemExit):
                main([
                    str(source), "--work-dir", str(tmp_path / "work"),
                    "--threshold", "0.7", "--budget-ratio", "0.2", "--no-assemble",
                ])

        kwargs = run.call_args.kwargs
        assert kwargs["threshold"] == 0.7
        assert kwargs["config"].budget_ratio == 0.2
        assert kwargs["output_path"] is None

    def test_signals_reach_pipeline(self, tmp_path):
        source = tmp_path / "match.mp4"
        source.write_bytes(b"\x00")
        run = AsyncMock(side_effect=PipelineError("stop here"))

        with patch("autoreel.cli.run_highlight_pipeline", new=run):
            with pytest.raises(SystemExit):
                main([
                    str(source), "--work-dir", str(tmp_path / "work"), "--no-assemble",
                    "--signal", "motion", "--signal", "color",
                ])

        names = [s.name for s in run.call_args.kwargs["signals"]]
        assert names == ["motion_trajectory", "color_dynamics"]

    def test_default_output_in_work_dir(self, tmp_path):
        source = tmp_path / "match.mp4"
        source.write_bytes(b"\x00")
        run = AsyncMock(side_effect=PipelineError("stop here"))

        with patch("autoreel.cli.run_highlight_pipeline", new=run):
            with pytest.raises(SystemExit):
                main([str(source), "--work-dir", str(tmp_path / "work")])

        assert run.call_args.kwargs["output_path"] == tmp_path / "work" / "highlights.mp4"

    def test_missing_tools_warn(self, tmp_path, caplog):
        with patch("autoreel.cli.check_ffmpeg_available", return_value=False):
            with pytest.raises(SystemExit):
                main([str(tmp_path / "nope.mp4"), "--work-dir", str(tmp_path / "work")])

        assert "ffmpeg/ffprobe not found" in caplog.text

    def test_remote_source_downloads_first(self, tmp_path):
        downloaded = tmp_path / "source.mp4"
        download = AsyncMock(return_value=downloaded)
        run = AsyncMock(side_effect=PipelineError("stop here"))

        with patch("autoreel.cli.download_video", new=download), \
             patch("autoreel.cli.run_highlight_pipeline", new=run):
            with pytest.raises(SystemExit):
                main(["https://example.com/watch?v=1", "--work-dir", str(tmp_path / "work"), "--no-assemble"])

        download.assert_awaited_once()
        assert run.call_args.kwargs["video_path"] == downloaded
