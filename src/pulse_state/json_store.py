from __future__ import annotations

import hashlib
import json
import os
import re
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError

from pulse_common.config import AppConfig
from .errors import (
    OptimisticLockError,
    StateDeserializationError,
    StateReadError,
    StateWriteError,
)
from .models import STORED_DOCUMENT, UserStateRecord


logger = structlog.get_logger(__name__)

FILE_SUFFIX = ".json"

# Characters that are not valid in a file name on at least one supported
# platform, plus ASCII control characters.
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_user_id(user_id: str) -> str:
    """Map a user id to a file name stem by replacing unsafe characters with "_".

    No escaping is applied, so distinct ids such as "a/b" and "a:b" map to the
    same stem and therefore the same document.
    """
    return _UNSAFE_FILENAME_CHARS.sub("_", user_id)


def _dump_record_json(record: UserStateRecord) -> bytes:
    # Human-readable, stable layout; camelCase keys as stored on disk
    return record.model_dump_json(by_alias=True, indent=2).encode("utf-8")


def _load_record_json(data: bytes) -> UserStateRecord:
    raw = json.loads(data.decode("utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("user document root must be a JSON object")
    return UserStateRecord.model_validate(raw, context={STORED_DOCUMENT: True})


def _fingerprint(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class JsonStateStore:
    """
    Local-disk persistence for `UserStateRecord`, one JSON file per user id.

    Usage
    - `read(user_id)` returns the stored record, or None when no file exists.
    - `write(user_id, record, if_match=None)` replaces the whole file and returns
      its new fingerprint (sha256 of the bytes written). When `if_match` is
      provided, the write proceeds only if the file still has that fingerprint;
      otherwise `OptimisticLockError` is raised. Without it, the last writer wins.
    - `delete(user_id)` is idempotent.

    Errors are raised as `StateStoreError` subclasses; converting them into
    results is the repository's job.

    Environment variables (optional)
    - `PULSE_DATA_DIR`: directory holding the user documents
    """

    def __init__(
        self,
        base_dir: os.PathLike[str] | str,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        if not base_dir:
            raise ValueError("base_dir is required")
        self._base_dir = Path(base_dir)
        self._clock = clock
        self._ensure_dir()

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "JsonStateStore":
        return cls(AppConfig.from_env().data_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _ensure_dir(self) -> None:
        try:
            if not self._base_dir.is_dir():
                self._base_dir.mkdir(parents=True, exist_ok=True)
                logger.info("data_dir_created", path=str(self._base_dir))
        except OSError as ex:
            raise StateWriteError(f"Cannot create data directory {self._base_dir}") from ex

    def path_for(self, user_id: str) -> Path:
        return self._base_dir / f"{sanitize_user_id(user_id)}{FILE_SUFFIX}"

    # -------- Core operations --------
    def read(self, user_id: str) -> Optional[UserStateRecord]:
        """Load the document for `user_id`.

        Returns None if no document exists.
        Raises:
        - StateDeserializationError if the content is not a valid user document.
        - StateReadError for other I/O failures.
        """
        path = self.path_for(user_id)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.debug("user_document_missing", user_id=user_id)
            return None
        except OSError as ex:
            raise StateReadError(f"Failed to read user document {path}") from ex

        try:
            record = _load_record_json(data)
        except (ValueError, ValidationError) as ex:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
            raise StateDeserializationError(f"Failed to parse user document {path}") from ex

        logger.debug("user_document_loaded", user_id=user_id)
        return record

    def fingerprint(self, user_id: str) -> Optional[str]:
        """Fingerprint of the current document, or None if there is none."""
        try:
            return _fingerprint(self.path_for(user_id).read_bytes())
        except FileNotFoundError:
            return None
        except OSError as ex:
            raise StateReadError(f"Failed to read user document for {user_id}") from ex

    def write(self, user_id: str, record: UserStateRecord, *, if_match: Optional[str] = None) -> str:
        """Serialize `record` and replace the document for `user_id`.

        Stamps `record.last_updated` with the current time before serializing.
        The new content goes to a temporary file in the same directory that is
        then renamed over the destination, so readers never see a partial file.
        """
        record.last_updated = self._clock()
        try:
            payload = _dump_record_json(record)
        except (ValueError, TypeError) as ex:
            raise StateWriteError(f"Failed to serialize user document for {user_id}") from ex

        self._ensure_dir()
        path = self.path_for(user_id)

        if if_match is not None:
            current = self.fingerprint(user_id)
            if current != if_match:
                raise OptimisticLockError(f"Fingerprint mismatch for {path}")

        temp_path = path.with_name(f"{path.name}.tmp-{uuid4().hex}")
        try:
            temp_path.write_bytes(payload)
            os.replace(temp_path, path)
        except OSError as ex:
            raise StateWriteError(f"Failed to write user document {path}") from ex
        finally:
            # Left behind only when the rename did not happen
            temp_path.unlink(missing_ok=True)

        logger.debug("user_document_written", user_id=user_id, bytes=len(payload))
        return _fingerprint(payload)

    def delete(self, user_id: str) -> None:
        """Remove the document for `user_id`; a missing document is not an error."""
        path = self.path_for(user_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("user_document_missing", user_id=user_id)
            return
        except OSError as ex:
            raise StateWriteError(f"Failed to delete user document {path}") from ex
        logger.info("user_document_deleted", user_id=user_id)

    def exists(self, user_id: str) -> bool:
        return self.path_for(user_id).is_file()
