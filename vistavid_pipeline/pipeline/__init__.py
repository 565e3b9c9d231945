"""
This package contains the workers of the ingestion pipeline.

Each worker handles exactly one trigger event per call and records its
outcome on the video record. `PipelineRuntime` carries the collaborators they
share; `StatusPoller` is the client-side view of the same records.
"""
from .moderation_worker import ModerationResult, ModerationWorker
from .runtime import PipelineRuntime
from .status_poller import ClientUploadState, PollOutcome, StatusPoller
from .transcode_worker import TranscodeResult, TranscodeWorker

__all__ = [
    "ModerationResult",
    "ModerationWorker",
    "PipelineRuntime",
    "ClientUploadState",
    "PollOutcome",
    "StatusPoller",
    "TranscodeResult",
    "TranscodeWorker",
]
