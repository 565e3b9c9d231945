import subprocess

import ffmpeg
import pytest

from vistavid_pipeline.domain.exceptions import EncodingException, FrameExtractionException
from vistavid_pipeline.domain.rendition import QualityPreset
from vistavid_pipeline.services import frame_extractor, hls_encoder
from vistavid_pipeline.services.frame_extractor import FrameExtractor
from vistavid_pipeline.services.hls_encoder import HlsEncoder, SourceDimensions
from vistavid_pipeline.utils.ffmpeg_utils import run_cmd, stderr_tail

PRESET_720 = QualityPreset(name="720p", height=720, bitrate="2800k")


def _completed(cmd_list, returncode=0, stderr=""):
    return subprocess.CompletedProcess(cmd_list, returncode, stdout="", stderr=stderr)


def _probe_result(width, height, tags=None, side_data=None):
    stream = {"codec_type": "video", "width": width, "height": height}
    if tags:
        stream["tags"] = tags
    if side_data:
        stream["side_data_list"] = side_data
    return {"streams": [{"codec_type": "audio"}, stream]}


def _option(cmd, flag):
    return cmd[cmd.index(flag) + 1]


def test_encode_command_follows_preset(tmp_path):
    variant = tmp_path / "720p"
    cmd = HlsEncoder(segment_duration=6, ffmpeg_bin="/opt/ffmpeg").build_command(
        tmp_path / "source.mp4", PRESET_720, variant, variant / "playlist_720p.m3u8"
    )

    assert cmd[0] == "/opt/ffmpeg"
    assert _option(cmd, "-vf") == "scale=-2:720"
    assert _option(cmd, "-b:v") == "2800k"
    assert _option(cmd, "-maxrate") == "2800k"
    assert _option(cmd, "-bufsize") == "5600k"
    assert _option(cmd, "-hls_time") == "6"
    assert _option(cmd, "-hls_list_size") == "0"
    assert _option(cmd, "-start_number") == "0"
    assert _option(cmd, "-profile:v") == "baseline"
    assert _option(cmd, "-level") == "3.0"
    assert _option(cmd, "-hls_segment_filename") == str(variant / "segment_%03d.ts")
    assert _option(cmd, "-f") == "hls"
    assert cmd[-1] == str(variant / "playlist_720p.m3u8")


@pytest.mark.parametrize("probe, expected", [
    (_probe_result(1920, 1080), SourceDimensions(1920, 1080)),
    (_probe_result(1920, 1080, tags={"rotate": "90"}), SourceDimensions(1080, 1920)),
    (_probe_result(1920, 1080, side_data=[{"rotation": -90}]), SourceDimensions(1080, 1920)),
    (_probe_result(1920, 1080, tags={"rotate": "180"}), SourceDimensions(1920, 1080)),
])
def test_probe_dimensions_applies_rotation(monkeypatch, tmp_path, probe, expected):
    monkeypatch.setattr(ffmpeg, "probe", lambda filename, cmd: probe)
    assert HlsEncoder().probe_dimensions(tmp_path / "source.mp4") == expected


def test_probe_without_video_stream(monkeypatch, tmp_path):
    monkeypatch.setattr(ffmpeg, "probe", lambda filename, cmd: {"streams": [{"codec_type": "audio"}]})
    with pytest.raises(EncodingException):
        HlsEncoder().probe_dimensions(tmp_path / "source.mp4")


def test_probe_error_is_wrapped(monkeypatch, tmp_path):
    def failing_probe(filename, cmd):
        raise ffmpeg.Error("ffprobe", b"", b"source.mp4: moov atom not found\n")

    monkeypatch.setattr(ffmpeg, "probe", failing_probe)
    with pytest.raises(EncodingException) as excinfo:
        HlsEncoder().probe_dimensions(tmp_path / "source.mp4")
    assert "moov atom not found" in excinfo.value.stderr


def test_encode_returns_relative_rendition(monkeypatch, tmp_path):
    def fake_run_cmd(cmd_list, show_cmd=False, timeout=None):
        playlist = tmp_path / "output" / "720p" / "playlist_720p.m3u8"
        playlist.write_text("#EXTM3U\n")
        (playlist.parent / "segment_000.ts").write_bytes(b"ts")
        return _completed(cmd_list)

    monkeypatch.setattr(hls_encoder, "run_cmd", fake_run_cmd)

    rendition = HlsEncoder().encode(tmp_path / "source.mp4", tmp_path / "output", PRESET_720,
                                    SourceDimensions(1080, 1920))

    assert str(rendition.playlist_path) == "720p/playlist_720p.m3u8"
    assert rendition.width == 406
    assert rendition.bandwidth == 2_800_000


def test_encode_failure_carries_stderr_tail(monkeypatch, tmp_path):
    monkeypatch.setattr(
        hls_encoder, "run_cmd",
        lambda cmd_list, show_cmd=False, timeout=None: _completed(
            cmd_list, returncode=1, stderr="frame=1\n\nsource.mp4: Invalid data found when processing input\n"
        ),
    )

    with pytest.raises(EncodingException) as excinfo:
        HlsEncoder().encode(tmp_path / "source.mp4", tmp_path / "output", PRESET_720, SourceDimensions(1920, 1080))
    assert "Invalid data found" in excinfo.value.stderr
    assert "720p" in str(excinfo.value)


def test_encode_without_playlist_fails(monkeypatch, tmp_path):
    monkeypatch.setattr(hls_encoder, "run_cmd", lambda cmd_list, show_cmd=False, timeout=None: _completed(cmd_list))
    with pytest.raises(EncodingException, match="no playlist"):
        HlsEncoder().encode(tmp_path / "source.mp4", tmp_path / "output", PRESET_720, SourceDimensions(1920, 1080))


def test_frame_extractor_orders_frames_numerically(monkeypatch, tmp_path):
    frames_dir = tmp_path / "frames"

    def fake_run_cmd(cmd_list, show_cmd=False, timeout=None):
        assert _option(cmd_list, "-vf") == "fps=1/2"
        for i in (1, 2, 10, 3):
            (frames_dir / f"frame-{i}.jpg").write_bytes(b"jpg")
        (frames_dir / "thumbs.db").write_bytes(b"")
        return _completed(cmd_list)

    monkeypatch.setattr(frame_extractor, "run_cmd", fake_run_cmd)

    frames = FrameExtractor(interval_seconds=2).extract(tmp_path / "source.mp4", frames_dir)

    assert [f.name for f in frames] == ["frame-1.jpg", "frame-2.jpg", "frame-3.jpg", "frame-10.jpg"]


def test_frame_extractor_without_output_fails(monkeypatch, tmp_path):
    monkeypatch.setattr(frame_extractor, "run_cmd",
                        lambda cmd_list, show_cmd=False, timeout=None: _completed(cmd_list))
    with pytest.raises(FrameExtractionException, match="No frames"):
        FrameExtractor().extract(tmp_path / "source.mp4", tmp_path / "frames")


def test_frame_extractor_missing_ffmpeg(monkeypatch, tmp_path):
    monkeypatch.setattr(frame_extractor, "run_cmd", lambda cmd_list, show_cmd=False, timeout=None: None)
    with pytest.raises(FrameExtractionException, match="could not be run"):
        FrameExtractor().extract(tmp_path / "source.mp4", tmp_path / "frames")


def test_run_cmd_reports_missing_executable():
    assert run_cmd(["definitely-not-an-installed-binary-4242", "-version"]) is None
    assert run_cmd([]) is None


def test_stderr_tail_keeps_last_non_empty_lines():
    assert stderr_tail(b"a\n\nb\nc\n", lines=2) == "b\nc"
    assert stderr_tail(None) == ""
