"""
Utilities Package for the ingestion pipeline.

Helpers shared by both workers that are not tied to either of them.

Modules:
    - workdir.py: The scratch working-directory context manager.
    - retry.py: Fixed-delay polling and retry-with-suggested-delay helpers.
    - manifest.py: Master playlist generation/parsing and upload metadata.
    - ffmpeg_utils.py: Command execution, toolchain verification and ffmpeg error formatting.
    - format_utils.py: Human-readable sizes and durations for log lines.
"""
