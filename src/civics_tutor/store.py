"""Key-value persistence and the canonical progress store.

Every practice screen reads and writes progress through one ProgressStore. Each
mutation reads the full collection, changes it and writes it back while holding a
per-key lock, so rapid answers or mark toggles never overwrite each other.
"""
import asyncio
import json
from datetime import datetime
from typing import Callable, Protocol

from loguru import logger

from civics_tutor.db import DEFAULT_DB_PATH, get_connection
from civics_tutor.models import AnswerEvent, SRSRecord
from civics_tutor.sm2 import record_from_dict, record_to_dict

INCORRECT_KEY = "practice:incorrect"
MARKED_KEY = "practice:marked"
SRS_KEY = "practice:srs_data"
STATS_KEY = "practice:stats"

Listener = Callable[[str, str], None]


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, data: dict | None = None):
        self.data = dict(data or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SQLiteKeyValueStore:
    """Rows of the kv_store table; blocking calls run in a worker thread."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def _get(self, key: str) -> str | None:
        conn = get_connection(self.db_path)
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        conn.close()
        return row["value"] if row else None

    def _set(self, key: str, value: str) -> None:
        conn = get_connection(self.db_path)
        conn.execute(
            """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
            (key, value, datetime.now().isoformat()),
        )
        conn.commit()
        conn.close()

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)


def _parse_id_list(raw: str | None, key: str) -> set[int]:
    if not raw:
        return set()
    try:
        data = json.loads(raw)
        return {int(i) for i in data}
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring corrupt data under {key}: {e}")
        return set()


def _parse_srs(raw: str | None) -> dict[int, SRSRecord]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Ignoring corrupt data under {SRS_KEY}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring corrupt data under {SRS_KEY}: not an object")
        return {}
    records = {}
    for question_id, entry in data.items():
        try:
            record = record_from_dict(entry, question_id=int(question_id))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping SRS entry {question_id!r}: {e}")
            continue
        records[record.question_id] = record
    return records


def _parse_answer_log(raw: str | None) -> list[dict]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Ignoring corrupt data under {STATS_KEY}: {e}")
        return []
    if not isinstance(data, list):
        return []
    return [entry for entry in data if isinstance(entry, dict)]


class ProgressStore:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[Listener] = []

    def _lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(key, value) after every successful write. Returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, value: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, value)
            except Exception as e:
                logger.error(f"Progress listener failed for {key}: {e}")

    async def _read(self, key: str) -> str | None:
        try:
            return await self.kv.get(key)
        except Exception as e:
            logger.error(f"Failed to read {key}: {e}")
            return None

    async def _write(self, key: str, value: str) -> None:
        await self.kv.set(key, value)
        self._notify(key, value)

    # Reads

    async def load_incorrect(self) -> set[int]:
        return _parse_id_list(await self._read(INCORRECT_KEY), INCORRECT_KEY)

    async def load_marked(self) -> set[int]:
        return _parse_id_list(await self._read(MARKED_KEY), MARKED_KEY)

    async def load_srs(self) -> dict[int, SRSRecord]:
        return _parse_srs(await self._read(SRS_KEY))

    async def load_answer_log(self) -> list[dict]:
        return _parse_answer_log(await self._read(STATS_KEY))

    # Read-modify-write. A failed read propagates here: writing back a partial
    # collection would erase what is stored.

    async def _update_ids(self, key: str, mutate: Callable[[set[int]], None]) -> set[int]:
        async with self._lock(key):
            ids = _parse_id_list(await self.kv.get(key), key)
            mutate(ids)
            await self._write(key, json.dumps(sorted(ids)))
            return ids

    async def add_incorrect(self, question_id: int) -> set[int]:
        return await self._update_ids(INCORRECT_KEY, lambda ids: ids.add(question_id))

    async def toggle_marked(self, question_id: int) -> bool:
        """Flip the marked flag and return the new state."""
        def flip(ids: set[int]) -> None:
            if question_id in ids:
                ids.remove(question_id)
            else:
                ids.add(question_id)

        return question_id in await self._update_ids(MARKED_KEY, flip)

    async def set_marked(self, question_id: int, marked: bool) -> set[int]:
        if marked:
            return await self._update_ids(MARKED_KEY, lambda ids: ids.add(question_id))
        return await self._update_ids(MARKED_KEY, lambda ids: ids.discard(question_id))

    async def save_srs_record(self, record: SRSRecord) -> None:
        async with self._lock(SRS_KEY):
            records = _parse_srs(await self.kv.get(SRS_KEY))
            records[record.question_id] = record
            payload = {str(qid): record_to_dict(r) for qid, r in sorted(records.items())}
            await self._write(SRS_KEY, json.dumps(payload))

    async def append_answer(self, event: AnswerEvent) -> None:
        async with self._lock(STATS_KEY):
            log = _parse_answer_log(await self.kv.get(STATS_KEY))
            log.append({
                "questionId": event.question_id,
                "answer": event.answer,
                "isCorrect": event.is_correct,
                "timeSpent": event.time_spent_ms,
                "timestamp": event.timestamp,
                "mode": event.mode,
                "category": event.category,
                "quality": event.quality,
            })
            await self._write(STATS_KEY, json.dumps(log))
