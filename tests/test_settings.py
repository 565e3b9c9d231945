import pytest

from vistavid_pipeline.config import common, moderation
from vistavid_pipeline.config.settings import PipelineSettings, load_settings, settings_from_dict
from vistavid_pipeline.domain.exceptions import ConfigurationException


@pytest.fixture(autouse=True)
def no_classifier_env(monkeypatch):
    monkeypatch.delenv(moderation.CLASSIFIER_URL_ENV, raising=False)
    monkeypatch.delenv(moderation.CLASSIFIER_API_KEY_ENV, raising=False)


def test_defaults_match_reference_behavior():
    settings = settings_from_dict({})

    assert settings.unsafe_threshold == 0.5
    assert settings.frame_interval_seconds == 1
    assert settings.classifier_max_attempts == 5
    assert settings.object_wait_attempts == 5
    assert settings.object_wait_delay_seconds == 2.0
    assert settings.segment_duration_seconds == 6
    assert [p.name for p in settings.quality_presets] == ["1080p", "720p", "480p", "360p"]
    assert settings.bucket_name == common.DEFAULT_BUCKET_NAME
    assert settings.classifier_api_key is None


def test_yaml_overrides(tmp_path):
    config = tmp_path / "pipeline.yaml"
    config.write_text(
        "storage:\n"
        "  backend: s3\n"
        "  bucket: media\n"
        "  endpoint_url: https://r2.example.com\n"
        "records:\n"
        f"  directory: {tmp_path / 'records'}\n"
        "moderation:\n"
        "  threshold: 0.7\n"
        "  frame_interval_seconds: 2\n"
        "  classifier_api_key: abc\n"
        "transcode:\n"
        "  segment_duration_seconds: 4\n"
        "  presets:\n"
        "    - {name: 720p, height: 720, bitrate: 2800k}\n"
        "    - {name: 360p, height: 360, bitrate: 800k}\n",
        encoding="utf-8",
    )

    settings = load_settings(config)

    assert settings.blob_backend == "s3"
    assert settings.bucket_name == "media"
    assert settings.s3_endpoint_url == "https://r2.example.com"
    assert settings.record_store_dir == (tmp_path / "records").resolve()
    assert settings.unsafe_threshold == 0.7
    assert settings.frame_interval_seconds == 2.0
    assert settings.classifier_api_key == "abc"
    assert settings.segment_duration_seconds == 4
    assert [(p.name, p.bandwidth) for p in settings.quality_presets] == [("720p", 2_800_000), ("360p", 800_000)]


def test_classifier_settings_from_environment(monkeypatch):
    monkeypatch.setenv(moderation.CLASSIFIER_URL_ENV, "https://classifier.example.com/v1")
    monkeypatch.setenv(moderation.CLASSIFIER_API_KEY_ENV, "env-token")

    settings = settings_from_dict({})

    assert settings.classifier_url == "https://classifier.example.com/v1"
    assert settings.classifier_api_key == "env-token"


def test_missing_explicit_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationException):
        load_settings(tmp_path / "absent.yaml")


def test_invalid_yaml_is_an_error(tmp_path):
    config = tmp_path / "broken.yaml"
    config.write_text("moderation: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationException):
        load_settings(config)


def test_top_level_must_be_a_mapping(tmp_path):
    config = tmp_path / "list.yaml"
    config.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationException):
        load_settings(config)


@pytest.mark.parametrize("config", [
    {"moderation": {"threshold": 1.5}},
    {"moderation": {"frame_interval_seconds": 0}},
    {"moderation": {"threshold": "high"}},
    {"transcode": {"presets": []}},
    {"transcode": {"presets": [{"name": "720p", "height": 720}]}},
    {"transcode": {"presets": [{"name": "a", "height": 720, "bitrate": "1k"},
                               {"name": "a", "height": 360, "bitrate": "1k"}]}},
    {"storage": {"backend": "ftp"}},
    {"storage": "not a mapping"},
])
def test_invalid_values_are_rejected(config):
    with pytest.raises(ConfigurationException):
        settings_from_dict(config)


def test_settings_are_immutable():
    settings = PipelineSettings()
    with pytest.raises(AttributeError):
        settings.unsafe_threshold = 0.9
