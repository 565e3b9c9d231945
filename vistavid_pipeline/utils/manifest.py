"""
HLS master playlist generation and upload metadata.

Per-rendition playlists and segments are written by ffmpeg itself; this module
only builds the master playlist that ties the renditions together, and decides
the content type and cache policy of every uploaded file.
"""
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, List

from ..config.transcode import (
    DEFAULT_CONTENT_TYPE,
    MANIFEST_CACHE_CONTROL,
    MANIFEST_CONTENT_TYPE,
    MANIFEST_EXTENSION,
    SEGMENT_CACHE_CONTROL,
    SEGMENT_CONTENT_TYPE,
    SEGMENT_EXTENSION,
)
from ..domain.rendition import Rendition

HEADER = "#EXTM3U"
VERSION_TAG = "#EXT-X-VERSION:3"
STREAM_INF_TAG = "#EXT-X-STREAM-INF:"

_ATTRIBUTE_PATTERN = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')


@dataclass(frozen=True)
class MasterEntry:
    """One `#EXT-X-STREAM-INF` entry of a master playlist."""

    bandwidth: int
    width: int
    height: int
    uri: str


def build_master_manifest(renditions: Iterable[Rendition]) -> str:
    """
    Builds the master playlist text for the given renditions.

    Entries keep the order of `renditions`, which is the preset order.
    Each carries the nominal bitrate (bits/sec) and the output resolution,
    and points at the rendition playlist by its path relative to the master.
    """
    lines = [HEADER, VERSION_TAG]
    for rendition in renditions:
        lines.append(
            f"{STREAM_INF_TAG}BANDWIDTH={rendition.bandwidth},"
            f"RESOLUTION={rendition.width}x{rendition.height}"
        )
        lines.append(rendition.playlist_path.as_posix())
    return "\n".join(lines) + "\n"


def parse_master_manifest(text: str) -> List[MasterEntry]:
    """
    Parses a master playlist into its stream entries, in playlist order.

    Raises:
        ValueError: If the header is missing or a stream tag has no URI line.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines or lines[0] != HEADER:
        raise ValueError("Not an HLS playlist: missing #EXTM3U header")

    entries: List[MasterEntry] = []
    i = 1
    while i < len(lines):
        line = lines[i]
        if line.startswith(STREAM_INF_TAG):
            if i + 1 >= len(lines) or lines[i + 1].startswith("#"):
                raise ValueError(f"Stream entry without URI: {line}")
            attrs = dict(_ATTRIBUTE_PATTERN.findall(line[len(STREAM_INF_TAG):]))
            width, _, height = attrs.get("RESOLUTION", "0x0").partition("x")
            entries.append(
                MasterEntry(
                    bandwidth=int(attrs.get("BANDWIDTH", 0)),
                    width=int(width or 0),
                    height=int(height or 0),
                    uri=lines[i + 1],
                )
            )
            i += 2
            continue
        i += 1
    return entries


def content_type_for(name: str) -> str:
    suffix = PurePosixPath(name).suffix.lower()
    if suffix == MANIFEST_EXTENSION:
        return MANIFEST_CONTENT_TYPE
    if suffix == SEGMENT_EXTENSION:
        return SEGMENT_CONTENT_TYPE
    return DEFAULT_CONTENT_TYPE


def cache_control_for(name: str) -> str:
    if PurePosixPath(name).suffix.lower() == MANIFEST_EXTENSION:
        return MANIFEST_CACHE_CONTROL
    return SEGMENT_CACHE_CONTROL
