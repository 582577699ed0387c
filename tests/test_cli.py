"""
Tests for the command line interface.
"""

from unittest.mock import patch

from click.testing import CliRunner

from flyover.cli import main


class RecordingEncoder:
    """Stands in for StreamingEncoder; writes a marker file on finish."""

    instances = []

    def __init__(self, output_path, crf=18, preset="medium"):
        self.output_path = output_path
        self.crf = crf
        self.preset = preset
        self.frames = 0
        RecordingEncoder.instances.append(self)

    async def setup(self, config):
        self.size = (config.width, config.height, config.fps)
        return self.output_path

    async def append(self, frame):
        self.frames += 1

    async def finish(self):
        with open(self.output_path, "wb") as f:
            f.write(b"video")

    async def abort(self):
        pass


class TestPreview:
    def test_prints_poses(self, sample_gpx_file):
        runner = CliRunner()
        result = runner.invoke(main, ["preview", sample_gpx_file, "--fps", "10", "--duration", "1", "--speed", "4"])
        assert result.exit_code == 0, result.output
        assert "Points:" in result.output
        pose_lines = [line for line in result.output.splitlines() if "bearing" in line]
        assert len(pose_lines) >= 5
        assert "100.0%" in pose_lines[-1]

    def test_zero_fps_rejected(self, sample_gpx_file):
        result = CliRunner().invoke(main, ["preview", sample_gpx_file, "--fps", "0"])
        assert result.exit_code == 2
        assert "--fps" in result.output

    def test_missing_file(self, tmp_path):
        result = CliRunner().invoke(main, ["preview", str(tmp_path / "missing.gpx")])
        assert result.exit_code == 2

    def test_invalid_gpx(self, tmp_path):
        bad = tmp_path / "bad.gpx"
        bad.write_text("<html><body>not a track</body></html>")
        result = CliRunner().invoke(main, ["preview", str(bad)])
        assert result.exit_code == 1
        assert "HTML" in result.output


class TestRender:
    """Tests for the render command."""

    def test_requires_ffmpeg(self, sample_gpx_file):
        with patch("flyover.cli.shutil.which", return_value=None):
            result = CliRunner().invoke(main, ["render", sample_gpx_file])
        assert result.exit_code == 2
        assert "FFmpeg not found" in result.output

    def test_too_many_images(self, sample_gpx_file, tmp_path):
        args = ["render", sample_gpx_file]
        for i in range(6):
            path = tmp_path / f"img{i}.png"
            path.write_bytes(b"")
            args += ["--ending-image", str(path)]
        with patch("flyover.cli.shutil.which", return_value="/usr/bin/ffmpeg"):
            result = CliRunner().invoke(main, args)
        assert result.exit_code == 2
        assert "At most 5 ending images" in result.output

    def test_render_complete(self, sample_gpx_file, tmp_path):
        output = tmp_path / "out.mp4"
        RecordingEncoder.instances.clear()
        args = [
            "render", sample_gpx_file, str(output),
            "--format", "square", "--quality", "fast",
            "--fps", "5", "--duration", "1", "--transition-frames", "2",
        ]
        with patch("flyover.cli.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("flyover.cli.StreamingEncoder", RecordingEncoder):
            result = CliRunner().invoke(main, args)

        assert result.exit_code == 0, result.output
        assert "Video saved to:" in result.output
        assert output.read_bytes() == b"video"

        encoder = RecordingEncoder.instances[-1]
        assert encoder.size == (1080, 1080, 5)
        assert encoder.crf == 23
        assert encoder.preset == "veryfast"
        assert encoder.frames >= 2 + 2 + 3

    def test_zero_fps_rejected(self, sample_gpx_file):
        with patch("flyover.cli.shutil.which", return_value="/usr/bin/ffmpeg"):
            result = CliRunner().invoke(main, ["render", sample_gpx_file, "--fps", "0"])
        assert result.exit_code == 2
        assert "--fps" in result.output

    def test_progress_bar_closed_when_run_crashes(self, sample_gpx_file, tmp_path):
        args = ["render", sample_gpx_file, str(tmp_path / "out.mp4"), "--fps", "5", "--duration", "1"]
        with patch("flyover.cli.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("flyover.cli.StreamingEncoder", RecordingEncoder), \
                patch("flyover.cli.RenderOrchestrator.run", side_effect=RuntimeError("boom")), \
                patch("flyover.cli.tqdm") as bar_cls:
            result = CliRunner().invoke(main, args)

        assert isinstance(result.exception, RuntimeError)
        bar_cls.return_value.close.assert_called_once()
