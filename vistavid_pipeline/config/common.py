"""
Common configuration settings used throughout the pipeline.

This module contains the constants shared by both workers: logging format,
storage layout, runtime budget and the defaults for the external toolchain.
Anything a deployment may want to change is also exposed through
`PipelineSettings`; the values here are the reference defaults.
"""
from pathlib import Path

# --- Project Paths ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# The optional YAML file holding deployment overrides. It is looked up at the
# project root unless a different path is given on the command line.
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"


# --- Logging Configuration ---
# The format string for the Loguru logger: timestamp, level, location, process
# id and the message itself.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{process} - <level>{message}</level>"
)


# --- Storage Layout ---
# The bucket holding raw uploads and published renditions.
DEFAULT_BUCKET_NAME = "vistavid-be.firebasestorage.app"

# Raw uploads are stored as `videos/{id}.mp4`; renditions under `hls/{id}/`.
RAW_VIDEO_PREFIX = "videos/"
RAW_VIDEO_EXTENSION = ".mp4"
HLS_PREFIX = "hls/"

# Public URL template for published objects. `{bucket}` and `{key}` are filled in.
DEFAULT_PUBLIC_URL_TEMPLATE = "https://storage.googleapis.com/{bucket}/{key}"

# Backend selection for the blob and record stores.
BLOB_BACKEND_LOCAL = "local"
BLOB_BACKEND_S3 = "s3"
DEFAULT_BLOB_BACKEND = BLOB_BACKEND_LOCAL
DEFAULT_LOCAL_BLOB_ROOT = Path("storage").resolve()
DEFAULT_RECORD_STORE_DIR = Path("records").resolve()


# --- Scratch Directories ---
# None means the platform temp directory (`tempfile.gettempdir()`).
DEFAULT_SCRATCH_ROOT: Path | None = None
MODERATION_SCRATCH_NAMESPACE = "moderation"
TRANSCODE_SCRATCH_NAMESPACE = "hls"
SOURCE_FILE_NAME = "source.mp4"


# --- External Toolchain ---
# Executables are looked up on PATH unless the YAML config points elsewhere.
DEFAULT_FFMPEG_BIN = "ffmpeg"
DEFAULT_FFPROBE_BIN = "ffprobe"


# --- Platform Budget ---
# The event platform kills an invocation after this many seconds. The workers
# only warn when a run gets close; a killed run leaves the record in its
# previous status and surfaces as a timeout on the client side.
PLATFORM_TIMEOUT_SECONDS = 540
PLATFORM_BUDGET_WARNING_RATIO = 0.8


# --- Raw Object Availability ---
# Object visibility can lag record creation. Poll this many times, this far apart.
OBJECT_WAIT_ATTEMPTS = 5
OBJECT_WAIT_DELAY_SECONDS = 2.0


# --- Client Polling Contract ---
# The mobile client waits this long after uploading, then reads the record up
# to CLIENT_POLL_ATTEMPTS times, CLIENT_POLL_INTERVAL_SECONDS apart.
CLIENT_POLL_INITIAL_DELAY_SECONDS = 5.0
CLIENT_POLL_ATTEMPTS = 45
CLIENT_POLL_INTERVAL_SECONDS = 2.0
