"""
On-disk aggregate store: external subject id → merged SubjectAggregate.

The whole map lives in one JSON document that is read in full, modified and
written back in full. Writers are serialized through a single asyncio lock so
concurrent deliveries for different subjects cannot drop each other's merge,
and every write lands through a temp file plus atomic rename after the previous
document has been copied to a backup.
"""

import asyncio
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from wellbeing_webhooks.domain.errors import StorageError
from wellbeing_webhooks.domain.models import SubjectAggregate, SubjectUpdate
from wellbeing_webhooks.domain.result import Result

logger = structlog.get_logger(__name__)

RawStore = dict[str, dict[str, Any]]


def write_json_atomic(path: Path, document: Any) -> None:
    """Serialize ``document`` next to ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json_document(path: Path) -> Result[Any, Exception]:
    """Read one JSON document; missing and corrupt files come back as errors."""
    try:
        with path.open(encoding="utf-8") as handle:
            return Result.ok(json.load(handle))
    except (OSError, ValueError) as e:
        return Result.err(e)


class AggregateStore:
    """
    Single-writer JSON store of subject aggregates.

    Reads go to the main file, then the backup, then fall back to an empty
    map. Records are kept as raw JSON objects; only the subject being merged
    is decoded, so a record this version cannot parse is never rewritten.
    """

    def __init__(self, path: Path, backup_path: Path | None = None) -> None:
        self.path = path
        self.backup_path = backup_path or path.with_name(f"{path.stem}-backup{path.suffix}")
        self._write_lock = asyncio.Lock()
        self.logger = logger.bind(component="aggregate_store", path=str(path))

    def _load_sync(self) -> RawStore:
        for candidate in (self.path, self.backup_path):
            if not candidate.exists():
                continue
            result = read_json_document(candidate)
            if result.is_ok() and isinstance(result.unwrap(), dict):
                if candidate == self.backup_path:
                    self.logger.warning("aggregate_store_loaded_from_backup")
                return result.unwrap()
            if result.is_err() and not isinstance(result.unwrap_err(), ValueError):
                raise StorageError(f"Cannot read {candidate.name}: {result.unwrap_err()}")
            self.logger.warning("aggregate_store_file_corrupt", file=candidate.name)
        return {}

    def _save_sync(self, data: RawStore) -> None:
        try:
            if self.path.exists():
                shutil.copyfile(self.path, self.backup_path)
            write_json_atomic(self.path, data)
        except OSError as e:
            self.logger.exception("aggregate_store_write_failed", error=str(e))
            raise StorageError(f"Cannot write {self.path.name}: {e}") from e

    def _clear_sync(self) -> None:
        # Both files end empty: the backup must not hold cleared subjects
        try:
            write_json_atomic(self.backup_path, {})
            write_json_atomic(self.path, {})
        except OSError as e:
            self.logger.exception("aggregate_store_clear_failed", error=str(e))
            raise StorageError(f"Cannot clear {self.path.name}: {e}") from e

    async def snapshot(self) -> RawStore:
        """Whole store as raw JSON objects (what reporting and the list endpoint read)."""
        return await asyncio.to_thread(self._load_sync)

    async def count(self) -> int:
        return len(await self.snapshot())

    async def get(self, subject_id: str) -> SubjectAggregate | None:
        raw = (await self.snapshot()).get(subject_id)
        if raw is None:
            return None
        return self._decode(subject_id, raw)

    async def merge(self, subject_id: str, update: SubjectUpdate) -> SubjectAggregate:
        """
        Merge one update into the subject's record and persist the whole map.

        Creates the record on first sight of ``subject_id``. When the merged
        record equals the stored one (a replayed event) nothing is written.
        """
        async with self._write_lock:
            data = await asyncio.to_thread(self._load_sync)
            raw = data.get(subject_id)
            current = (
                self._decode(subject_id, raw)
                if raw is not None
                else SubjectAggregate.empty(update.model_copy(update={"external_id": subject_id}))
            )
            merged = current.merged_with(update)
            encoded = merged.to_json_dict()

            if raw == encoded:
                self.logger.debug("merge_noop", external_id=subject_id)
                return merged

            data[subject_id] = encoded
            await asyncio.to_thread(self._save_sync, data)

        self.logger.info(
            "subject_merged",
            external_id=subject_id,
            kind=update.kind.value,
            subjects=len(data),
        )
        return merged

    async def clear(self) -> None:
        """Administrative reset: the store becomes an empty map."""
        async with self._write_lock:
            await asyncio.to_thread(self._clear_sync)
        self.logger.info("aggregate_store_cleared")

    def _decode(self, subject_id: str, raw: dict[str, Any]) -> SubjectAggregate:
        try:
            return SubjectAggregate.model_validate({"externalId": subject_id, **raw})
        except ValidationError as e:
            self.logger.error("aggregate_record_invalid", external_id=subject_id, error=str(e))
            raise StorageError(f"Stored record for {subject_id} is unreadable") from e
