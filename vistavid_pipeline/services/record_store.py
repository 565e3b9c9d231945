"""
Record store adapters.

The pipeline reads a video record by id and applies partial updates to it;
it never rewrites a whole document. A status write only lands if the status
the record holds at that moment may become the new one, which is what keeps
the two workers from undoing each other's progress when they race.
`RecordStore` defines that surface.
`YamlRecordStore` keeps one YAML document per record on disk, which is what
the CLI and the tests use in place of the managed document database.
"""
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml
from loguru import logger

from ..domain.exceptions import RecordNotFoundException, RecordStoreException
from ..domain.video_record import (
    FIELD_STATUS,
    RecordUpdate,
    VideoRecord,
    VideoStatus,
    check_transition,
    update_status,
)


class RecordStore:
    """Interface of the video record persistence."""

    def get(self, video_id: str) -> Optional[VideoRecord]:
        raise NotImplementedError("Subclasses must implement get().")

    def create(self, record: VideoRecord) -> None:
        raise NotImplementedError("Subclasses must implement create().")

    def update(self, video_id: str, fields: RecordUpdate, fallback: Optional[RecordUpdate] = None) -> bool:
        """
        Sets the given fields on an existing record, leaving all others as they are.

        When `fields` writes a status, the record's current status is read in
        the same atomic step and must be allowed to become the new one
        (`VideoStatus.can_become`). If it is not, `fallback` is applied
        instead, or the update is refused when there is no fallback.

        Returns:
            True if `fields` was applied, False if `fallback` was applied instead.

        Raises:
            RecordNotFoundException: If no record exists for `video_id`.
            InvalidStatusTransitionException: If the status write is refused
                and no `fallback` was given.
        """
        raise NotImplementedError("Subclasses must implement update().")

    @staticmethod
    def _merge(video_id: str, data: Dict[str, Any], fields: RecordUpdate,
               fallback: Optional[RecordUpdate]) -> bool:
        """Applies `fields` (or `fallback`) to the raw record `data` in place."""
        target = update_status(fields)
        if target is not None:
            current = VideoStatus(data.get(FIELD_STATUS, VideoStatus.UPLOADING.value))
            if not current.can_become(target):
                if fallback is None:
                    check_transition(video_id, current, target)  # raises
                logger.warning(
                    f"[{video_id}] Record is already '{current.value}', not writing '{target.value}'"
                )
                data.update(fallback)
                return False
        data.update(fields)
        return True


class YamlRecordStore(RecordStore):
    """
    Stores each record as `<directory>/<video_id>.yaml`.

    Updates are read-modify-write under a per-record lock file created with
    O_EXCL, so the two workers can update disjoint fields of the same record
    from separate processes on one host without losing each other's writes.
    Files are replaced atomically, so readers never see a half-written record.
    """

    LOCK_POLL_SECONDS = 0.05
    LOCK_TIMEOUT_SECONDS = 10.0
    LOCK_STALE_SECONDS = 60.0

    def __init__(self, directory: Path):
        self.directory = directory.resolve()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, video_id: str) -> Path:
        if not video_id or "/" in video_id or "\\" in video_id or video_id in (".", ".."):
            raise RecordStoreException(f"Invalid video id: {video_id!r}")
        return self.directory / f"{video_id}.yaml"

    @contextmanager
    def _locked(self, video_id: str) -> Iterator[None]:
        lock_path = self._path(video_id).with_suffix(".lock")
        deadline = time.monotonic() + self.LOCK_TIMEOUT_SECONDS
        while True:
            try:
                fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
                break
            except FileExistsError:
                try:
                    if time.time() - lock_path.stat().st_mtime > self.LOCK_STALE_SECONDS:
                        logger.warning(f"Removing stale record lock {lock_path}")
                        lock_path.unlink(missing_ok=True)
                        continue
                except FileNotFoundError:
                    continue
                if time.monotonic() > deadline:
                    raise RecordStoreException(f"Timed out waiting for lock on record '{video_id}'")
                time.sleep(self.LOCK_POLL_SECONDS)
        try:
            os.write(fd, f"pid={os.getpid()}\n".encode())
            yield
        finally:
            os.close(fd)
            lock_path.unlink(missing_ok=True)

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.is_file():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RecordStoreException(f"Could not parse record file {path}: {e}") from e
        if not isinstance(data, dict):
            raise RecordStoreException(f"Record file {path} does not hold a mapping")
        return data

    def _write(self, path: Path, data: Dict[str, Any]) -> None:
        tmp = path.with_name(path.name + ".part")
        with tmp.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        tmp.replace(path)

    def get(self, video_id: str) -> Optional[VideoRecord]:
        data = self._read(self._path(video_id))
        if data is None:
            return None
        return VideoRecord.from_dict(video_id, data)

    def create(self, record: VideoRecord) -> None:
        path = self._path(record.id)
        with self._locked(record.id):
            if path.exists():
                raise RecordStoreException(f"Record '{record.id}' already exists")
            self._write(path, record.to_dict())
        logger.debug(f"Created record {record.id} with status '{record.status.value}'")

    def update(self, video_id: str, fields: RecordUpdate, fallback: Optional[RecordUpdate] = None) -> bool:
        path = self._path(video_id)
        with self._locked(video_id):
            data = self._read(path)
            if data is None:
                raise RecordNotFoundException(f"No record for video '{video_id}'")
            applied = self._merge(video_id, data, fields, fallback)
            self._write(path, data)
        logger.debug(f"Updated record {video_id}: {sorted(fields if applied else fallback)}")
        return applied
