"""
Configuration settings related to HLS transcoding.

This module defines the quality ladder, the encoder options shared by every
rendition and the metadata attached to uploaded files.
"""
from ..domain.rendition import QualityPreset

# --- Quality Ladder ---
# Processed in this order; the master manifest lists renditions in the same
# order, and clients pick the first entry as their default.
QUALITY_PRESETS = (
    QualityPreset(name="1080p", height=1080, bitrate="5000k"),
    QualityPreset(name="720p", height=720, bitrate="2800k"),
    QualityPreset(name="480p", height=480, bitrate="1400k"),
    QualityPreset(name="360p", height=360, bitrate="800k"),
)

# --- Segmenting ---
HLS_SEGMENT_DURATION_SECONDS = 6
SEGMENT_FILE_PATTERN = "segment_%03d.ts"
RENDITION_PLAYLIST_PATTERN = "playlist_{name}.m3u8"
MASTER_PLAYLIST_NAME = "master.m3u8"
OUTPUT_DIR_NAME = "output"

# --- Encoder Options ---
# Baseline/3.0 keeps the output playable on older phones.
H264_PROFILE = "baseline"
H264_LEVEL = "3.0"
# Buffer size is this multiple of the preset bitrate.
BUFSIZE_MULTIPLIER = 2

# --- Upload Metadata ---
MANIFEST_EXTENSION = ".m3u8"
SEGMENT_EXTENSION = ".ts"
MANIFEST_CONTENT_TYPE = "application/x-mpegURL"
SEGMENT_CONTENT_TYPE = "video/MP2T"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
MANIFEST_CACHE_CONTROL = "public, max-age=31536000"
SEGMENT_CACHE_CONTROL = "public, max-age=31536000"
