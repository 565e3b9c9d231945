"""
The moderation worker.

Triggered once per newly created video record. It samples frames from the
raw upload, scores them with the unsafe-content classifier and records one of
three outcomes on the video:

- `blocked`: some frame scored above the threshold. The raw upload is deleted.
- `moderation_passed`: every scored frame stayed at or below the threshold.
- `moderation_failed`: anything went wrong before a decision was reached.
"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from typing import List, Optional

from loguru import logger

from ..config.common import MODERATION_SCRATCH_NAMESPACE, SOURCE_FILE_NAME
from ..config.moderation import BLOCKED_ERROR_MESSAGE, FRAMES_DIR_NAME
from ..domain.events import RecordCreatedEvent
from ..domain.exceptions import ObjectNotAvailableException
from ..domain.video_record import ModerationTransitions, VideoStatus, raw_object_key
from ..utils.format_utils import format_scores, format_timedelta
from ..utils.retry import wait_until
from ..utils.workdir import scratch_workdir
from .runtime import PipelineRuntime, check_budget


@dataclass
class ModerationResult:
    """
    Outcome of one moderation run.

    Attributes:
        video_id: The moderated video.
        status: `BLOCKED` or `MODERATION_PASSED`.
        max_score: Highest score among the frames that were scored.
        frame_scores: Scores in frame order. Shorter than the frame count when
                      the run stopped early on a violation.
        frames_total: Number of frames extracted from the video.
        status_recorded: False when the record had already moved past
                         moderation, so only the score was written.
    """

    video_id: str
    status: VideoStatus
    max_score: float
    frame_scores: List[float] = field(default_factory=list)
    frames_total: int = 0
    status_recorded: bool = True

    @property
    def stopped_early(self) -> bool:
        return len(self.frame_scores) < self.frames_total


class ModerationWorker:
    """
    Runs content moderation for one record-created event at a time.

    The worker holds no per-run state; concurrent calls for different videos
    only share the injected runtime.
    """

    def __init__(self, runtime: PipelineRuntime):
        self.runtime = runtime
        self.settings = runtime.settings

    def handle(self, event: RecordCreatedEvent) -> Optional[ModerationResult]:
        """
        Moderates the video behind `event`.

        The event carries the record as it was at creation, so a redelivered
        event still says `uploading`. The stored record is read as well, and a
        video that already has a moderation outcome is left alone.

        Returns:
            The result, or None when the event was ignored: created in another
            state than `uploading`, no record for it, or already moderated.

        Raises:
            Any exception raised while moderating, after `moderation_failed`
            has been recorded on the video.
        """
        video_id = event.video_id
        if not event.is_new_upload:
            logger.info(f"[{video_id}] Skipping moderation for video created with status '{event.status}'")
            return None
        record = self.runtime.record_store.get(video_id)
        if record is None:
            logger.warning(f"[{video_id}] No video record, skipping moderation")
            return None
        if record.status.is_moderation_outcome:
            logger.info(f"[{video_id}] Skipping moderation for video already '{record.status.value}'")
            return None
        if record.status.is_transcode_outcome:
            logger.info(f"[{video_id}] Video is already '{record.status.value}'; only the score will be recorded")

        object_key = raw_object_key(video_id)
        scores: List[float] = []
        started = datetime.now()
        logger.info(f"[{video_id}] Starting content moderation")

        try:
            self._wait_for_object(object_key)
            with scratch_workdir(
                PurePosixPath(object_key).name,
                MODERATION_SCRATCH_NAMESPACE,
                self.settings.scratch_root,
            ) as workdir:
                source = workdir / SOURCE_FILE_NAME
                logger.info(f"[{video_id}] Downloading source video...")
                self.runtime.blob_store.download(object_key, source)

                logger.info(f"[{video_id}] Extracting frames...")
                frames = self.runtime.frame_extractor.extract(source, workdir / FRAMES_DIR_NAME)

                logger.info(f"[{video_id}] Starting analysis of {len(frames)} frames...")
                self._score_frames(video_id, frames, scores)
                result = ModerationResult(
                    video_id=video_id,
                    status=VideoStatus.MODERATION_PASSED,
                    max_score=max(scores, default=0.0),
                    frame_scores=list(scores),
                    frames_total=len(frames),
                )
                self._log_summary(result)
                self._apply_decision(result, object_key)
        except Exception as e:
            logger.error(f"[{video_id}] Error in content moderation: {e}")
            self._record_failure(video_id, e, max(scores, default=0.0))
            raise

        elapsed = datetime.now() - started
        check_budget(video_id, elapsed)
        logger.success(
            f"[{video_id}] Moderation finished with '{result.status.value}' "
            f"in {format_timedelta(elapsed)}"
        )
        return result

    def _wait_for_object(self, object_key: str) -> None:
        logger.info(f"Waiting for {object_key} to be available...")
        available = wait_until(
            lambda: self.runtime.blob_store.exists(object_key),
            attempts=self.settings.object_wait_attempts,
            delay=self.settings.object_wait_delay_seconds,
            description=f"Object {object_key}",
            sleep=self.runtime.sleep,
        )
        if not available:
            raise ObjectNotAvailableException(
                f"File {object_key} not available after {self.settings.object_wait_attempts} attempts"
            )

    def _score_frames(self, video_id: str, frames, scores: List[float]) -> None:
        """
        Scores frames in order, appending to `scores` as it goes.

        `scores` is filled in place so the caller still sees the partial
        maximum if the classifier fails halfway through.
        """
        threshold = self.settings.unsafe_threshold
        running_max = 0.0
        for index, frame in enumerate(frames, start=1):
            score = self.runtime.classifier.score_frame(frame)
            scores.append(score)
            running_max = max(running_max, score)
            if running_max > threshold:
                logger.info(f"[{video_id}] Stopping analysis - frame {index} exceeded threshold {threshold}")
                break

    def _apply_decision(self, result: ModerationResult, object_key: str) -> None:
        """
        Writes the decision, or only the score if the record moved on meanwhile.

        The transcode worker runs on its own trigger and may have finished
        first; its outcome is kept. A blocked video loses its raw upload either way.
        """
        if result.max_score > self.settings.unsafe_threshold:
            logger.warning(f"[{result.video_id}] Unsafe content detected, blocking video...")
            self.runtime.blob_store.delete(object_key)
            result.status = VideoStatus.BLOCKED
            update = ModerationTransitions.blocked(result.max_score, BLOCKED_ERROR_MESSAGE)
        else:
            logger.info(f"[{result.video_id}] Content moderation passed")
            update = ModerationTransitions.passed(result.max_score)

        result.status_recorded = self.runtime.record_store.update(
            result.video_id, update, fallback=ModerationTransitions.score_only(result.max_score)
        )

    def _record_failure(self, video_id: str, error: Exception, score: float) -> None:
        message = str(error) or type(error).__name__
        try:
            self.runtime.record_store.update(
                video_id,
                ModerationTransitions.failed(message, score),
                fallback=ModerationTransitions.score_only(score),
            )
        except Exception as update_error:
            logger.error(f"[{video_id}] Could not record moderation failure: {update_error}")

    @staticmethod
    def _log_summary(result: ModerationResult) -> None:
        scores = result.frame_scores
        average = sum(scores) / len(scores) if scores else 0.0
        stopped = " (stopped early)" if result.stopped_early else ""
        logger.info(
            f"[{result.video_id}] Content moderation summary: "
            f"frames analyzed {len(scores)}/{result.frames_total}{stopped}, "
            f"max score {result.max_score:.4f}, average score {average:.4f}, "
            f"scores {format_scores(scores)}"
        )
