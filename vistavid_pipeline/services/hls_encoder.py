"""
This module defines the HlsEncoder, which turns a source video into one HLS
rendition per quality preset using ffmpeg.

Each rendition lives in its own directory under the output root:

    output/
        1080p/playlist_1080p.m3u8
        1080p/segment_000.ts
        1080p/segment_001.ts
        720p/...

The master playlist that ties the renditions together is written by the
transcode worker, not by ffmpeg, so that its order and attributes are under
our control.
"""
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

import ffmpeg
from loguru import logger

from ..config.common import DEFAULT_FFMPEG_BIN, DEFAULT_FFPROBE_BIN, PLATFORM_TIMEOUT_SECONDS
from ..config.transcode import (
    BUFSIZE_MULTIPLIER,
    H264_LEVEL,
    H264_PROFILE,
    HLS_SEGMENT_DURATION_SECONDS,
    RENDITION_PLAYLIST_PATTERN,
    SEGMENT_FILE_PATTERN,
)
from ..domain.exceptions import EncodingException
from ..domain.rendition import QualityPreset, Rendition, scaled_width
from ..utils.ffmpeg_utils import run_cmd, stderr_tail


@dataclass(frozen=True)
class SourceDimensions:
    """Display dimensions of the source, with rotation already applied."""

    width: int
    height: int


def _rotation(stream: Dict[str, Any]) -> int:
    """Rotation in degrees from either the legacy `rotate` tag or display-matrix side data."""
    rotate = (stream.get("tags") or {}).get("rotate")
    if rotate is not None:
        try:
            return int(float(rotate)) % 360
        except ValueError:
            return 0
    for side_data in stream.get("side_data_list") or []:
        if "rotation" in side_data:
            try:
                return int(float(side_data["rotation"])) % 360
            except (TypeError, ValueError):
                return 0
    return 0


class HlsEncoder:
    """
    Runs ffmpeg to produce segmented HLS renditions.

    Args:
        segment_duration: Target segment length in seconds.
        ffmpeg_bin: The ffmpeg executable.
        ffprobe_bin: The ffprobe executable, used to read the source dimensions.
    """

    def __init__(
        self,
        segment_duration: int = HLS_SEGMENT_DURATION_SECONDS,
        ffmpeg_bin: str = DEFAULT_FFMPEG_BIN,
        ffprobe_bin: str = DEFAULT_FFPROBE_BIN,
    ):
        self.segment_duration = segment_duration
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin

    def probe_dimensions(self, source: Path) -> SourceDimensions:
        """
        Reads the display width and height of the first video stream.

        Phone recordings are often stored landscape with a rotation flag.
        ffmpeg applies that rotation when encoding, so a 90/270 degree
        rotation swaps the reported dimensions here too.

        Raises:
            EncodingException: If the file cannot be probed or has no video stream.
        """
        try:
            probe = ffmpeg.probe(str(source), cmd=self.ffprobe_bin)
        except ffmpeg.Error as e:
            raise EncodingException(
                f"Could not probe {source.name}: {stderr_tail(e.stderr)}", stderr_tail(e.stderr)
            ) from e
        except FileNotFoundError as e:
            raise EncodingException(f"ffprobe executable '{self.ffprobe_bin}' not found") from e

        stream: Optional[Dict[str, Any]] = next(
            (s for s in probe.get("streams", []) if s.get("codec_type") == "video"), None
        )
        if stream is None:
            raise EncodingException(f"No video stream found in {source.name}")

        width, height = int(stream.get("width") or 0), int(stream.get("height") or 0)
        if width <= 0 or height <= 0:
            raise EncodingException(f"Invalid video dimensions {width}x{height} in {source.name}")
        rotation = _rotation(stream)
        if rotation in (90, 270):
            width, height = height, width
        logger.debug(f"Probed {source.name}: {width}x{height} (rotation {rotation})")
        return SourceDimensions(width=width, height=height)

    def build_command(self, source: Path, preset: QualityPreset, variant_dir: Path, playlist: Path) -> List[str]:
        """Builds the ffmpeg command list for one rendition."""
        return [
            self.ffmpeg_bin, "-y",
            "-i", str(source),
            "-c:v", "libx264",
            "-profile:v", H264_PROFILE,
            "-level", H264_LEVEL,
            "-vf", f"scale=-2:{preset.height}",
            "-b:v", preset.bitrate,
            "-maxrate", preset.bitrate,
            "-bufsize", f"{preset.bitrate_kbps * BUFSIZE_MULTIPLIER}k",
            "-c:a", "aac",
            "-start_number", "0",
            "-hls_time", str(self.segment_duration),
            "-hls_list_size", "0",
            "-hls_segment_filename", str(variant_dir / SEGMENT_FILE_PATTERN),
            "-f", "hls",
            str(playlist),
        ]

    def encode(
        self,
        source: Path,
        output_root: Path,
        preset: QualityPreset,
        dimensions: SourceDimensions,
    ) -> Rendition:
        """
        Encodes one rendition of `source` under `output_root/<preset.name>/`.

        Returns:
            The produced rendition, with its playlist path relative to `output_root`.

        Raises:
            EncodingException: If ffmpeg fails or does not write the playlist.
        """
        variant_dir = output_root / preset.name
        variant_dir.mkdir(parents=True, exist_ok=True)
        playlist_name = RENDITION_PLAYLIST_PATTERN.format(name=preset.name)
        playlist = variant_dir / playlist_name

        res = run_cmd(
            self.build_command(source, preset, variant_dir, playlist),
            show_cmd=True,
            timeout=PLATFORM_TIMEOUT_SECONDS,
        )
        if res is None:
            raise EncodingException(f"Encoding {preset.name} failed: ffmpeg could not be run")
        if res.returncode != 0:
            tail = stderr_tail(res.stderr)
            raise EncodingException(f"Encoding {preset.name} failed (rc={res.returncode}): {tail}", tail)

        if not playlist.is_file():
            raise EncodingException(f"Encoding {preset.name} produced no playlist")

        return Rendition(
            preset=preset,
            playlist_path=PurePosixPath(preset.name) / playlist_name,
            width=scaled_width(dimensions.width, dimensions.height, preset.height),
        )
