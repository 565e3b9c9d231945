"""
Quality presets and produced renditions.
"""
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

_BITRATE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmM]?)\s*$")
_BITRATE_FACTORS = {"": 1, "k": 1_000, "m": 1_000_000}


def parse_bitrate(bitrate: str) -> int:
    """
    Converts an ffmpeg-style bitrate string into bits per second.

    Args:
        bitrate: A value such as "5000k", "2.5M" or "800000".

    Returns:
        The bitrate in bits per second, e.g. 5_000_000 for "5000k".

    Raises:
        ValueError: If the string is not a recognizable bitrate.
    """
    match = _BITRATE_PATTERN.match(bitrate)
    if not match:
        raise ValueError(f"Unrecognized bitrate: {bitrate!r}")
    value, unit = match.groups()
    return int(float(value) * _BITRATE_FACTORS[unit.lower()])


@dataclass(frozen=True)
class QualityPreset:
    """A target rendition: name, output height and nominal video bitrate."""

    name: str
    height: int
    bitrate: str

    @property
    def bandwidth(self) -> int:
        return parse_bitrate(self.bitrate)

    @property
    def bitrate_kbps(self) -> int:
        return self.bandwidth // 1000

    @classmethod
    def from_dict(cls, data: dict) -> "QualityPreset":
        return cls(
            name=str(data["name"]),
            height=int(data["height"]),
            bitrate=str(data["bitrate"]),
        )


@dataclass(frozen=True)
class Rendition:
    """
    One rendition produced by the encoder.

    Attributes:
        preset: The preset this rendition was encoded from.
        playlist_path: The rendition playlist, relative to the output root
                       (e.g. "720p/playlist_720p.m3u8"). This is the URI the
                       master manifest references.
        width: Output width in pixels, derived from the source aspect ratio.
    """

    preset: QualityPreset
    playlist_path: PurePosixPath
    width: int

    @property
    def name(self) -> str:
        return self.preset.name

    @property
    def height(self) -> int:
        return self.preset.height

    @property
    def bandwidth(self) -> int:
        return self.preset.bandwidth


def scaled_width(source_width: int, source_height: int, target_height: int) -> int:
    """
    Width ffmpeg produces for `scale=-2:target_height`.

    `-2` keeps the aspect ratio and rounds to the nearest even number, which
    most H.264 encoders require. Halves round up, as in ffmpeg's `av_rescale`.
    """
    if source_width <= 0 or source_height <= 0:
        raise ValueError(
            f"Invalid source dimensions {source_width}x{source_height}"
        )
    divisor = source_height * 2
    half_width = (target_height * source_width + divisor // 2) // divisor
    return max(2, half_width * 2)
