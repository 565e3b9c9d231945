"""
Command-Line Interface (CLI) setup for the ingestion pipeline.

Each worker is normally triggered by the event platform. The commands here
deliver the same events by hand, which is how the pipeline is run locally and
how a stuck video is re-driven:

    main.py moderate --video-id abc123
    main.py moderate --event record-created.json
    main.py transcode --object-name videos/abc123.mp4
    main.py transcode --event object-finalized.json
    main.py watch --video-id abc123 --until-processed

An `--event` file holds the trigger payload as the platform delivers it
(JSON, or YAML with the same keys).
"""
import argparse
from pathlib import Path
from typing import List, Optional

from .domain.video_record import VideoStatus, raw_object_key

COMMAND_MODERATE = "moderate"
COMMAND_TRANSCODE = "transcode"
COMMAND_WATCH = "watch"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="VistaVid video ingestion pipeline: content moderation and HLS transcoding."
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="YAML config file. Defaults to config.user.yaml at the project root.",
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    moderate = subparsers.add_parser(
        COMMAND_MODERATE, help="Deliver a record-created event to the moderation worker."
    )
    source = moderate.add_mutually_exclusive_group(required=True)
    source.add_argument("--video-id", help="Id of the video record.")
    source.add_argument("--event", type=Path, help="Record-created payload file ({id, status, ...}).")
    moderate.add_argument(
        "--status", default=VideoStatus.UPLOADING.value,
        help="Status carried by the event with --video-id (only 'uploading' is moderated).",
    )
    moderate.add_argument(
        "--create-record", action="store_true",
        help="Create the record in 'uploading' first if it does not exist (local runs).",
    )

    transcode = subparsers.add_parser(
        COMMAND_TRANSCODE, help="Deliver an object-finalized event to the transcode worker."
    )
    target = transcode.add_mutually_exclusive_group(required=True)
    target.add_argument("--object-name", help="Blob key of the raw upload, e.g. videos/<id>.mp4.")
    target.add_argument("--video-id", help="Shortcut for --object-name videos/<id>.mp4.")
    target.add_argument("--event", type=Path, help="Object-finalized payload file ({name, contentType, ...}).")
    transcode.add_argument("--content-type", default="video/mp4", help="Content type of the object.")

    watch = subparsers.add_parser(COMMAND_WATCH, help="Poll a video record like the mobile client does.")
    watch.add_argument("--video-id", required=True, help="Id of the video record.")
    watch.add_argument(
        "--until-processed", action="store_true",
        help="Keep polling after moderation passes until the video is processed.",
    )
    watch.add_argument("--attempts", type=int, default=None, help="Override the number of status checks.")
    watch.add_argument("--interval", type=float, default=None, help="Override the delay between checks.")
    watch.add_argument("--no-initial-delay", action="store_true", help="Start polling immediately.")

    return parser


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments.

    Returns:
        argparse.Namespace: The parsed arguments. For `transcode` without
                            `--event`, `object_name` is always filled in.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == COMMAND_TRANSCODE and args.video_id:
        args.object_name = raw_object_key(args.video_id)
    if args.command == COMMAND_WATCH:
        if args.attempts is not None and args.attempts < 1:
            parser.error("--attempts must be at least 1")
        if args.interval is not None and args.interval < 0:
            parser.error("--interval must not be negative")

    return args
