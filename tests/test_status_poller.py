import pytest

from conftest import RecordingSleep
from vistavid_pipeline.domain.video_record import VideoRecord, VideoStatus
from vistavid_pipeline.pipeline.status_poller import ClientUploadState, StatusPoller, interpret_status


class SequenceStore:
    """Returns one scripted status per read; None means the record is not visible yet."""

    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.reads = 0

    def get(self, video_id):
        status = self.statuses[min(self.reads, len(self.statuses) - 1)]
        self.reads += 1
        if status is None:
            return None
        return VideoRecord(id=video_id, status=status)


@pytest.mark.parametrize("status, expected", [
    (VideoStatus.UPLOADING, None),
    (VideoStatus.UPLOADED, None),
    (VideoStatus.BLOCKED, ClientUploadState.BLOCKED),
    (VideoStatus.MODERATION_FAILED, ClientUploadState.FAILED),
    (VideoStatus.FAILED, ClientUploadState.FAILED),
    (VideoStatus.MODERATION_PASSED, ClientUploadState.PASSED),
    (VideoStatus.PROCESSED, ClientUploadState.PROCESSED),
])
def test_interpret_status(status, expected):
    assert interpret_status(status) is expected


def test_passed_is_not_final_when_waiting_for_processing():
    assert interpret_status(VideoStatus.MODERATION_PASSED, wait_for_processed=True) is None


def test_poll_stops_at_first_final_state():
    store = SequenceStore([None, VideoStatus.UPLOADING, VideoStatus.BLOCKED])
    sleep = RecordingSleep()

    outcome = StatusPoller(store, sleep=sleep).poll("v1")

    assert outcome.state == ClientUploadState.BLOCKED
    assert outcome.attempts == 3
    assert outcome.record.status == VideoStatus.BLOCKED
    assert sleep.calls == [5.0, 2.0, 2.0]


def test_poll_times_out_after_bounded_attempts():
    store = SequenceStore([VideoStatus.UPLOADING])
    sleep = RecordingSleep()

    outcome = StatusPoller(store, sleep=sleep).poll("v1")

    assert outcome.state == ClientUploadState.TIMED_OUT
    assert outcome.attempts == 45
    assert store.reads == 45
    assert sleep.calls == [5.0] + [2.0] * 44
    assert outcome.state.message.endswith("please try again")


def test_poll_until_processed():
    store = SequenceStore([VideoStatus.MODERATION_PASSED, VideoStatus.MODERATION_PASSED, VideoStatus.PROCESSED])

    outcome = StatusPoller(store, initial_delay=0, wait_for_processed=True, sleep=RecordingSleep()).poll("v1")

    assert outcome.state == ClientUploadState.PROCESSED
    assert outcome.attempts == 3
