"""
Defines custom exception types for the ingestion pipeline.

Both workers catch exceptions at the top of their run, turn them into a
terminal status with a human-readable `error`, and re-raise so the event
platform still observes the failure. The types below let callers (and tests)
tell the failure classes apart without parsing messages.

All custom exceptions inherit from the base `VideoPipelineException`.
"""


class VideoPipelineException(Exception):
    """Base class for all custom exceptions in the ingestion pipeline."""

    pass


class ConfigurationException(VideoPipelineException):
    """Raised when the YAML configuration cannot be read or holds invalid values."""

    pass


class InvalidEventException(VideoPipelineException, ValueError):
    """Raised when a trigger payload lacks the fields a worker needs."""

    pass


class InvalidStatusTransitionException(VideoPipelineException):
    """
    Raised when a status write is not allowed: it would move a record
    backwards, or it would mark a video `processed` without any quality.

    Each status may only replace the statuses listed for it in
    `domain.video_record` (for example `processed` never replaces `blocked`).
    The record store checks this against the stored status at write time,
    which is what keeps the two concurrently running workers consistent.
    """

    pass


class RetriesExhaustedException(VideoPipelineException):
    """Raised by the retry helpers when every attempt reported 'not ready'."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


# --- Storage ---
class StorageException(VideoPipelineException):
    """Base class for blob store failures."""

    pass


class ObjectNotAvailableException(StorageException):
    """
    Raised when a blob never becomes visible, or is missing when downloaded.

    Object availability can lag the creation of the record that points at it,
    so the moderation worker polls for a while before raising this.
    """

    pass


class UploadException(StorageException):
    """Raised when publishing a file to the blob store fails."""

    pass


# --- Records ---
class RecordStoreException(VideoPipelineException):
    """Base class for record store failures."""

    pass


class RecordNotFoundException(RecordStoreException):
    """Raised when a partial update targets a record that does not exist."""

    pass


# --- Moderation ---
class ModerationException(VideoPipelineException):
    """Base class for failures during content moderation."""

    pass


class FrameExtractionException(ModerationException):
    """
    Raised when frames cannot be sampled from the source video.

    This includes the case where ffmpeg succeeds but writes no frames: a video
    that could not be sampled is never allowed to pass moderation.
    """

    pass


class ClassifierException(ModerationException):
    """Base class for errors talking to the image classification service."""

    pass


class ClassifierResponseException(ClassifierException):
    """Raised when the service answers with something other than scores or a loading notice."""

    pass


class ClassifierUnavailableException(ClassifierException):
    """Raised when the service is still loading after the last allowed attempt."""

    pass


# --- Transcoding ---
class TranscodeException(VideoPipelineException):
    """Base class for failures during HLS transcoding."""

    pass


class EncodingException(TranscodeException):
    """
    Raised when ffmpeg fails to produce a rendition or to probe the source.

    A single preset failing aborts the whole run; no partial quality ladder
    is ever published.
    """

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr
