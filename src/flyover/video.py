"""Video encoding: stream raw RGBA frames to FFmpeg."""

import asyncio
import logging
import os
import subprocess
import threading
from typing import Optional

from .config import RenderConfig

logger = logging.getLogger(__name__)


class EncoderError(RuntimeError):
    pass


class StreamingEncoder:
    """Streams raw RGBA frames to FFmpeg via stdin pipe for constant memory usage.

    Lifecycle: ``setup`` starts FFmpeg, ``append`` writes frames in order,
    ``finish`` seals the file. ``abort`` kills FFmpeg and deletes the partial
    output instead.
    """

    def __init__(
        self,
        output_path: str,
        crf: int = 18,
        preset: str = "medium",
        ffmpeg: str = "ffmpeg",
    ):
        self.output_path = output_path
        self.crf = crf
        self.preset = preset
        self.ffmpeg = ffmpeg
        self.process: Optional[subprocess.Popen] = None
        self.frame_size = 0
        self.frames_written = 0
        self._finished = False
        self._stderr_chunks: list[bytes] = []
        self._stderr_size = 0
        self._MAX_STDERR = 1024 * 1024  # 1 MB cap
        self._stderr_thread: Optional[threading.Thread] = None

    def command(self, config: RenderConfig) -> list[str]:
        return [
            self.ffmpeg,
            "-y",  # overwrite output
            "-f", "rawvideo",
            "-pix_fmt", "rgba",
            "-s", f"{config.width}x{config.height}",
            "-framerate", str(config.fps),
            "-i", "-",  # stdin
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            self.output_path,
        ]

    async def setup(self, config: RenderConfig) -> str:
        if self.process is not None:
            raise EncoderError("encoder is already set up")
        cmd = self.command(config)
        logger.debug("Starting encoder: %s", " ".join(cmd))
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise EncoderError(f"Could not start FFmpeg: {e}") from e
        self.frame_size = config.width * config.height * 4
        # Drain stderr in a background thread to prevent pipe buffer deadlock
        self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
        self._stderr_thread.start()
        return self.output_path

    def _drain_stderr(self) -> None:
        """Read stderr continuously so FFmpeg never blocks on a full pipe."""
        for chunk in iter(lambda: self.process.stderr.read(4096), b""):
            if self._stderr_size < self._MAX_STDERR:
                self._stderr_chunks.append(chunk)
                self._stderr_size += len(chunk)

    def _stderr_text(self) -> str:
        return b"".join(self._stderr_chunks).decode(errors="replace")

    async def append(self, frame: bytes) -> None:
        """Write a single raw RGBA frame to the encoder."""
        if self.process is None:
            raise EncoderError("encoder not set up; call setup() first")
        if self._finished:
            raise EncoderError("encoder already finished; no more frames accepted")
        if len(frame) != self.frame_size:
            raise EncoderError(
                f"frame is {len(frame)} bytes, expected {self.frame_size} "
                "(width x height x 4 RGBA)"
            )
        try:
            await asyncio.to_thread(self.process.stdin.write, frame)
        except (BrokenPipeError, ValueError) as e:
            raise EncoderError(f"FFmpeg stopped accepting frames:\n{self._stderr_text()}") from e
        self.frames_written += 1

    async def finish(self) -> None:
        """Close input and wait for FFmpeg to finish encoding."""
        if self.process is None or self._finished:
            return
        self._finished = True
        if self.process.stdin and not self.process.stdin.closed:
            self.process.stdin.close()
        await asyncio.to_thread(self.process.wait)
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=5)
        if self.process.returncode != 0:
            raise EncoderError(f"FFmpeg encoding failed:\n{self._stderr_text()}")
        logger.debug("Encoded %d frames to %s", self.frames_written, self.output_path)

    async def abort(self) -> None:
        """Stop FFmpeg without sealing the file and remove the partial output."""
        if self.process is None or self._finished:
            return
        self._finished = True
        self.process.kill()
        if self.process.stdin and not self.process.stdin.closed:
            try:
                self.process.stdin.close()
            except BrokenPipeError:
                pass  # FFmpeg is already gone
        await asyncio.to_thread(self.process.wait)
        if os.path.exists(self.output_path):
            os.remove(self.output_path)
            logger.debug("Removed partial output %s", self.output_path)
