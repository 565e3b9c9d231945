import json
import os
import sys
from dataclasses import replace
from pathlib import Path, PurePosixPath

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from vistavid_pipeline.config.settings import PipelineSettings
from vistavid_pipeline.domain.exceptions import EncodingException, FrameExtractionException
from vistavid_pipeline.domain.rendition import QualityPreset, Rendition, scaled_width
from vistavid_pipeline.domain.video_record import VideoRecord, VideoStatus, raw_object_key
from vistavid_pipeline.pipeline.runtime import PipelineRuntime
from vistavid_pipeline.services.blob_store import LocalBlobStore
from vistavid_pipeline.services.hls_encoder import SourceDimensions
from vistavid_pipeline.services.record_store import YamlRecordStore


class ScriptedClassifier:
    """Returns scripted scores in order; an Exception item is raised instead."""

    def __init__(self, scores):
        self.scores = list(scores)
        self.calls = []

    def score_frame(self, frame_path):
        self.calls.append(Path(frame_path).name)
        item = self.scores[len(self.calls) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        pass


class FakeFrameExtractor:
    def __init__(self, frame_count=3, error=None):
        self.frame_count = frame_count
        self.error = error
        self.sources = []

    def extract(self, video_path, output_dir):
        self.sources.append(Path(video_path))
        if self.error is not None:
            raise self.error
        if self.frame_count == 0:
            raise FrameExtractionException(f"No frames could be extracted from {Path(video_path).name}")
        output_dir.mkdir(parents=True, exist_ok=True)
        frames = []
        for i in range(1, self.frame_count + 1):
            frame = output_dir / f"frame-{i}.jpg"
            frame.write_bytes(b"\xff\xd8jpeg" + bytes([i]))
            frames.append(frame)
        return frames


class FakeEncoder:
    """Writes a playlist and two segments per preset, like ffmpeg would."""

    def __init__(self, dimensions=SourceDimensions(1920, 1080), fail_on=None):
        self.dimensions = dimensions
        self.fail_on = fail_on
        self.encoded = []

    def probe_dimensions(self, source):
        return self.dimensions

    def encode(self, source, output_root, preset, dimensions):
        if preset.name == self.fail_on:
            raise EncodingException(f"Encoding {preset.name} failed: boom", "boom")
        variant_dir = output_root / preset.name
        variant_dir.mkdir(parents=True, exist_ok=True)
        playlist_name = f"playlist_{preset.name}.m3u8"
        (variant_dir / playlist_name).write_text(
            "#EXTM3U\n#EXTINF:6.0,\nsegment_000.ts\n#EXTINF:4.0,\nsegment_001.ts\n#EXT-X-ENDLIST\n"
        )
        (variant_dir / "segment_000.ts").write_bytes(b"ts0")
        (variant_dir / "segment_001.ts").write_bytes(b"ts1")
        self.encoded.append(preset.name)
        return Rendition(
            preset=preset,
            playlist_path=PurePosixPath(preset.name) / playlist_name,
            width=scaled_width(dimensions.width, dimensions.height, preset.height),
        )


class FakeResponse:
    def __init__(self, body, status_code=200, text=None):
        self._body = body
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Stands in for requests.Session; replays scripted responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


def loading_response(estimated_time=None):
    body = {"error": "Model Falconsai/nsfw_image_detection is currently loading"}
    if estimated_time is not None:
        body["estimated_time"] = estimated_time
    return FakeResponse(body, status_code=503)


def scores_response(nsfw, normal=None):
    normal = 1.0 - nsfw if normal is None else normal
    return FakeResponse([{"label": "normal", "score": normal}, {"label": "nsfw", "score": nsfw}])


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def settings(tmp_path):
    return PipelineSettings(
        local_blob_root=tmp_path / "storage",
        record_store_dir=tmp_path / "records",
        scratch_root=tmp_path / "scratch",
        public_url_template="https://cdn.example.com/{bucket}/{key}",
        bucket_name="test-bucket",
        classifier_url="http://classifier.invalid/score",
    )


@pytest.fixture
def blob_store(settings):
    return LocalBlobStore(settings.local_blob_root, bucket_name=settings.bucket_name,
                          public_url_template=settings.public_url_template)


@pytest.fixture
def record_store(settings):
    return YamlRecordStore(settings.record_store_dir)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_runtime(settings, blob_store, record_store, sleep):
    def _make(classifier=None, frame_extractor=None, encoder=None, **overrides):
        run_settings = replace(settings, **overrides) if overrides else settings
        return PipelineRuntime(
            settings=run_settings,
            blob_store=blob_store,
            record_store=record_store,
            classifier=classifier or ScriptedClassifier([]),
            frame_extractor=frame_extractor or FakeFrameExtractor(),
            encoder=encoder or FakeEncoder(),
            sleep=sleep,
        )
    return _make


@pytest.fixture
def uploaded_video(tmp_path, blob_store, record_store):
    """Creates a record in `uploading` and stores its raw object."""
    def _upload(video_id="vid123", status=VideoStatus.UPLOADING, store_object=True):
        record_store.create(VideoRecord(id=video_id, status=status, extra={"userId": "u1"}))
        if store_object:
            source = tmp_path / f"{video_id}-upload.mp4"
            source.write_bytes(b"fake mp4 payload")
            blob_store.upload(source, raw_object_key(video_id), "video/mp4", "no-cache")
        return video_id
    return _upload


def scratch_leftovers(settings):
    root = settings.scratch_root
    if root is None or not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_dir() and p.parent != root]


def two_presets():
    return (
        QualityPreset(name="720p", height=720, bitrate="2800k"),
        QualityPreset(name="360p", height=360, bitrate="800k"),
    )
