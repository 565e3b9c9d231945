"""
Deployment settings loaded from a YAML file.

The module constants in `common`, `moderation` and `transcode` are the
reference defaults. A deployment can override any of them in
`config.user.yaml` (or a file passed with `--config`), for example:

    storage:
      backend: s3
      bucket: my-bucket
      endpoint_url: https://<account>.r2.cloudflarestorage.com
    paths:
      ffmpeg_dir: /opt/ffmpeg/bin
    moderation:
      threshold: 0.6
      frame_interval_seconds: 2
    transcode:
      presets:
        - {name: 720p, height: 720, bitrate: 2800k}

`load_settings()` returns one immutable `PipelineSettings`, which the entry
point turns into a `PipelineRuntime` and hands to the workers.
"""
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from loguru import logger

from ..domain.exceptions import ConfigurationException
from ..domain.rendition import QualityPreset
from . import common, moderation, transcode


@dataclass(frozen=True)
class PipelineSettings:
    # Storage
    blob_backend: str = common.DEFAULT_BLOB_BACKEND
    bucket_name: str = common.DEFAULT_BUCKET_NAME
    local_blob_root: Path = common.DEFAULT_LOCAL_BLOB_ROOT
    public_url_template: str = common.DEFAULT_PUBLIC_URL_TEMPLATE
    s3_endpoint_url: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    record_store_dir: Path = common.DEFAULT_RECORD_STORE_DIR

    # Toolchain and scratch space
    ffmpeg_bin: str = common.DEFAULT_FFMPEG_BIN
    ffprobe_bin: str = common.DEFAULT_FFPROBE_BIN
    scratch_root: Optional[Path] = common.DEFAULT_SCRATCH_ROOT

    # Moderation
    unsafe_threshold: float = moderation.UNSAFE_THRESHOLD
    unsafe_label: str = moderation.UNSAFE_LABEL
    frame_interval_seconds: float = moderation.FRAME_INTERVAL_SECONDS
    classifier_url: str = moderation.DEFAULT_CLASSIFIER_URL
    classifier_api_key: Optional[str] = None
    classifier_max_attempts: int = moderation.CLASSIFIER_MAX_ATTEMPTS
    classifier_default_wait_seconds: float = moderation.CLASSIFIER_DEFAULT_WAIT_SECONDS
    classifier_timeout_seconds: float = moderation.CLASSIFIER_TIMEOUT_SECONDS
    object_wait_attempts: int = common.OBJECT_WAIT_ATTEMPTS
    object_wait_delay_seconds: float = common.OBJECT_WAIT_DELAY_SECONDS

    # Transcoding
    segment_duration_seconds: int = transcode.HLS_SEGMENT_DURATION_SECONDS
    quality_presets: Tuple[QualityPreset, ...] = field(
        default_factory=lambda: tuple(transcode.QUALITY_PRESETS)
    )

    def __post_init__(self):
        if not 0.0 <= self.unsafe_threshold <= 1.0:
            raise ConfigurationException(
                f"moderation.threshold must be within [0, 1], got {self.unsafe_threshold}"
            )
        if self.frame_interval_seconds <= 0:
            raise ConfigurationException("moderation.frame_interval_seconds must be positive")
        if self.classifier_max_attempts < 1 or self.object_wait_attempts < 1:
            raise ConfigurationException("Attempt counts must be at least 1")
        if self.segment_duration_seconds <= 0:
            raise ConfigurationException("transcode.segment_duration_seconds must be positive")
        if not self.quality_presets:
            raise ConfigurationException("transcode.presets must not be empty")
        names = [p.name for p in self.quality_presets]
        if len(set(names)) != len(names):
            raise ConfigurationException(f"Duplicate preset names in {names}")
        if self.blob_backend not in (common.BLOB_BACKEND_LOCAL, common.BLOB_BACKEND_S3):
            raise ConfigurationException(f"Unknown storage.backend '{self.blob_backend}'")


def _executable(directory: Optional[str], name: str) -> str:
    """Resolves `name` inside `directory`, falling back to PATH lookup."""
    exe_name = f"{name}.exe" if sys.platform == "win32" else name
    if directory:
        candidate = Path(directory) / exe_name
        if candidate.is_file():
            return str(candidate)
        logger.warning(
            f"`ffmpeg_dir` is configured, but '{exe_name}' was not found there. Falling back to system PATH."
        )
    return name


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationException(f"Section '{name}' must be a mapping")
    return section


def settings_from_dict(config: Dict[str, Any]) -> PipelineSettings:
    """Builds settings from an already-parsed config mapping."""
    storage = _section(config, "storage")
    records = _section(config, "records")
    paths = _section(config, "paths")
    mod = _section(config, "moderation")
    tc = _section(config, "transcode")

    overrides: Dict[str, Any] = {}
    try:
        # --- storage / records ---
        if "backend" in storage:
            overrides["blob_backend"] = str(storage["backend"])
        if "bucket" in storage:
            overrides["bucket_name"] = str(storage["bucket"])
        if storage.get("local_root"):
            overrides["local_blob_root"] = Path(storage["local_root"]).resolve()
        if storage.get("public_url_template"):
            overrides["public_url_template"] = str(storage["public_url_template"])
        for key, attr in (
            ("endpoint_url", "s3_endpoint_url"),
            ("region", "s3_region"),
            ("access_key", "s3_access_key"),
            ("secret_key", "s3_secret_key"),
        ):
            if storage.get(key):
                overrides[attr] = str(storage[key])
        if records.get("directory"):
            overrides["record_store_dir"] = Path(records["directory"]).resolve()

        # --- paths ---
        ffmpeg_dir = paths.get("ffmpeg_dir")
        overrides["ffmpeg_bin"] = _executable(ffmpeg_dir, common.DEFAULT_FFMPEG_BIN)
        overrides["ffprobe_bin"] = _executable(ffmpeg_dir, common.DEFAULT_FFPROBE_BIN)
        if paths.get("scratch_dir"):
            overrides["scratch_root"] = Path(paths["scratch_dir"]).resolve()

        # --- moderation ---
        if "threshold" in mod:
            overrides["unsafe_threshold"] = float(mod["threshold"])
        if mod.get("label"):
            overrides["unsafe_label"] = str(mod["label"])
        if "frame_interval_seconds" in mod:
            overrides["frame_interval_seconds"] = float(mod["frame_interval_seconds"])
        overrides["classifier_url"] = str(
            mod.get("classifier_url")
            or os.environ.get(moderation.CLASSIFIER_URL_ENV)
            or moderation.DEFAULT_CLASSIFIER_URL
        )
        api_key = mod.get("classifier_api_key") or os.environ.get(moderation.CLASSIFIER_API_KEY_ENV)
        if api_key:
            overrides["classifier_api_key"] = str(api_key)
        if "classifier_max_attempts" in mod:
            overrides["classifier_max_attempts"] = int(mod["classifier_max_attempts"])
        if "classifier_default_wait_seconds" in mod:
            overrides["classifier_default_wait_seconds"] = float(mod["classifier_default_wait_seconds"])
        if "classifier_timeout_seconds" in mod:
            overrides["classifier_timeout_seconds"] = float(mod["classifier_timeout_seconds"])
        if "object_wait_attempts" in mod:
            overrides["object_wait_attempts"] = int(mod["object_wait_attempts"])
        if "object_wait_delay_seconds" in mod:
            overrides["object_wait_delay_seconds"] = float(mod["object_wait_delay_seconds"])

        # --- transcode ---
        if "segment_duration_seconds" in tc:
            overrides["segment_duration_seconds"] = int(tc["segment_duration_seconds"])
        if "presets" in tc:
            overrides["quality_presets"] = tuple(
                QualityPreset.from_dict(p) for p in (tc["presets"] or [])
            )
    except (TypeError, ValueError, KeyError) as e:
        raise ConfigurationException(f"Invalid configuration value: {e}") from e

    return PipelineSettings(**overrides)


def load_settings(config_path: Optional[Path] = None) -> PipelineSettings:
    """
    Loads pipeline settings from a YAML file.

    Args:
        config_path: The YAML file to read. Defaults to `config.user.yaml` at
                     the project root. A missing default file is not an error;
                     a missing explicitly-given file is.

    Returns:
        The merged settings (file values over module defaults).

    Raises:
        ConfigurationException: If the file cannot be parsed or holds invalid values.
    """
    path = config_path or common.USER_CONFIG_PATH
    if not path.is_file():
        if config_path is not None:
            raise ConfigurationException(f"Config file '{path}' does not exist")
        logger.debug(f"User config '{path}' not found. Using built-in defaults.")
        return settings_from_dict({})

    try:
        with path.open("r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationException(f"Could not parse '{path}': {e}") from e

    if not isinstance(user_config, dict):
        raise ConfigurationException(f"'{path}' must contain a mapping at the top level")

    logger.debug(f"Loaded user config from '{path}'")
    return settings_from_dict(user_config)
