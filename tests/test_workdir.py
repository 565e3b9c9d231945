import pytest

from vistavid_pipeline.utils.workdir import scratch_workdir


def test_directory_is_removed_after_use(tmp_path):
    with scratch_workdir("abc.mp4", "moderation", tmp_path) as workdir:
        (workdir / "frames").mkdir()
        (workdir / "frames" / "frame-1.jpg").write_bytes(b"x")
        assert workdir.parent == tmp_path / "moderation"
        assert workdir.name.startswith("abc.mp4-")
    assert not workdir.exists()


def test_directory_is_removed_when_the_block_raises(tmp_path):
    with pytest.raises(RuntimeError):
        with scratch_workdir("abc.mp4", "hls", tmp_path) as workdir:
            (workdir / "source.mp4").write_bytes(b"x")
            raise RuntimeError("encoder crashed")
    assert not workdir.exists()


def test_each_call_gets_its_own_directory(tmp_path):
    with scratch_workdir("same.mp4", "hls", tmp_path) as first:
        with scratch_workdir("same.mp4", "hls", tmp_path) as second:
            assert first != second
            assert first.is_dir() and second.is_dir()


def test_unsafe_key_characters_are_replaced(tmp_path):
    with scratch_workdir("../../etc/passwd", "hls", tmp_path) as workdir:
        assert workdir.parent == tmp_path / "hls"
        assert "/" not in workdir.name
