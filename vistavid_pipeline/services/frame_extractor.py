"""
Samples still frames from a video with ffmpeg.
"""
import re
from pathlib import Path
from typing import List

from loguru import logger

from ..config.common import DEFAULT_FFMPEG_BIN, PLATFORM_TIMEOUT_SECONDS
from ..config.moderation import FRAME_FILE_PATTERN, FRAME_FILE_PREFIX, FRAME_INTERVAL_SECONDS
from ..domain.exceptions import FrameExtractionException
from ..utils.ffmpeg_utils import run_cmd, stderr_tail

_FRAME_NUMBER = re.compile(rf"^{re.escape(FRAME_FILE_PREFIX)}(\d+)\.jpg$")


class FrameExtractor:
    """
    Extracts one JPEG frame every `interval_seconds` seconds of video.

    Frames are written as `frame-1.jpg`, `frame-2.jpg`, ... and returned in
    that (numeric) order, which is the order they appear in the video.
    """

    def __init__(self, interval_seconds: float = FRAME_INTERVAL_SECONDS, ffmpeg_bin: str = DEFAULT_FFMPEG_BIN):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.ffmpeg_bin = ffmpeg_bin

    def build_command(self, video_path: Path, output_dir: Path) -> List[str]:
        return [
            self.ffmpeg_bin, "-y",
            "-i", str(video_path),
            "-vf", f"fps=1/{self.interval_seconds:g}",
            str(output_dir / FRAME_FILE_PATTERN),
        ]

    def extract(self, video_path: Path, output_dir: Path) -> List[Path]:
        """
        Runs the extraction and lists the produced frames.

        Raises:
            FrameExtractionException: If ffmpeg fails or produces no frames.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        res = run_cmd(self.build_command(video_path, output_dir), show_cmd=True, timeout=PLATFORM_TIMEOUT_SECONDS)
        if res is None:
            raise FrameExtractionException(f"ffmpeg could not be run for {video_path.name}")
        if res.returncode != 0:
            raise FrameExtractionException(
                f"Frame extraction failed for {video_path.name} (rc={res.returncode}): {stderr_tail(res.stderr)}"
            )

        frames = self.list_frames(output_dir)
        if not frames:
            raise FrameExtractionException(f"No frames could be extracted from {video_path.name}")
        logger.debug(f"Extracted {len(frames)} frames from {video_path.name}")
        return frames

    @staticmethod
    def list_frames(directory: Path) -> List[Path]:
        """Frame files in `directory`, ordered by frame number."""
        numbered = []
        for path in directory.iterdir():
            match = _FRAME_NUMBER.match(path.name)
            if match:
                numbered.append((int(match.group(1)), path))
        return [path for _, path in sorted(numbered)]
