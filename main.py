"""
Main entry point for the VistaVid ingestion pipeline.

This script parses command-line arguments, configures logging, builds the
per-process runtime from the YAML settings and delivers one trigger event to
the matching worker (or polls a record for the `watch` command).
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from vistavid_pipeline.cli import COMMAND_MODERATE, COMMAND_TRANSCODE, COMMAND_WATCH, get_args
from vistavid_pipeline.config.common import LOGGER_FORMAT
from vistavid_pipeline.config.settings import load_settings
from vistavid_pipeline.domain.events import ObjectFinalizedEvent, RecordCreatedEvent
from vistavid_pipeline.domain.exceptions import (
    ConfigurationException,
    InvalidEventException,
    VideoPipelineException,
)
from vistavid_pipeline.domain.video_record import VideoRecord, VideoStatus
from vistavid_pipeline.pipeline import (
    ClientUploadState,
    ModerationWorker,
    PipelineRuntime,
    StatusPoller,
    TranscodeWorker,
)
from vistavid_pipeline.utils.ffmpeg_utils import verify_ffmpeg


# Configure the logger for initial setup.
# The level is overridden once the command-line arguments are parsed.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


def _load_event(path: Path) -> Dict[str, Any]:
    """Reads a trigger payload file. JSON payloads parse as YAML too."""
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise InvalidEventException(f"Could not read event file {path}: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidEventException(f"Event file {path} does not hold a mapping")
    return payload


def _run_moderate(runtime: PipelineRuntime, args) -> int:
    if args.event is not None:
        event = RecordCreatedEvent.from_payload(_load_event(args.event))
    else:
        event = RecordCreatedEvent(video_id=args.video_id, status=args.status)

    if args.create_record and runtime.record_store.get(event.video_id) is None:
        runtime.record_store.create(VideoRecord(id=event.video_id, status=VideoStatus.UPLOADING))
        logger.info(f"Created record {event.video_id} in status 'uploading'")

    result = ModerationWorker(runtime).handle(event)
    if result is not None:
        recorded = "" if result.status_recorded else ", record status kept"
        logger.info(f"Moderation result: {result.status.value} (score {result.max_score:.4f}{recorded})")
    return 0


def _run_transcode(runtime: PipelineRuntime, args) -> int:
    if args.event is not None:
        event = ObjectFinalizedEvent.from_payload(_load_event(args.event))
    else:
        event = ObjectFinalizedEvent(name=args.object_name, content_type=args.content_type)
    result = TranscodeWorker(runtime).handle(event)
    if result is not None:
        logger.info(f"Published {result.hls_url}")
    return 0


def _run_watch(runtime: PipelineRuntime, args) -> int:
    poller_kwargs = {"wait_for_processed": args.until_processed, "sleep": runtime.sleep}
    if args.attempts is not None:
        poller_kwargs["attempts"] = args.attempts
    if args.interval is not None:
        poller_kwargs["interval"] = args.interval
    if args.no_initial_delay:
        poller_kwargs["initial_delay"] = 0.0

    outcome = StatusPoller(runtime.record_store, **poller_kwargs).poll(args.video_id)
    logger.info(f"[{args.video_id}] {outcome.state.value}: {outcome.state.message}")
    if outcome.record is not None and outcome.record.error:
        logger.info(f"[{args.video_id}] error: {outcome.record.error}")
    return 0 if outcome.state in (ClientUploadState.PASSED, ClientUploadState.PROCESSED) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Runs one pipeline command.

    Returns:
        The process exit code: 0 on success or a skipped event, 1 on failure.
    """
    args = get_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    try:
        settings = load_settings(args.config)
    except ConfigurationException as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.command in (COMMAND_MODERATE, COMMAND_TRANSCODE):
        if not verify_ffmpeg(settings.ffmpeg_bin, settings.ffprobe_bin):
            logger.warning("FFmpeg toolchain check failed; media steps will fail and be recorded on the video.")

    runtime = PipelineRuntime.from_settings(settings)
    handlers = {
        COMMAND_MODERATE: _run_moderate,
        COMMAND_TRANSCODE: _run_transcode,
        COMMAND_WATCH: _run_watch,
    }
    try:
        return handlers[args.command](runtime, args)
    except VideoPipelineException as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except Exception:
        logger.exception(f"{args.command} failed with an unexpected error")
        return 1
    finally:
        runtime.close()


if __name__ == "__main__":
    sys.exit(main())
