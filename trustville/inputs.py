"""
Durable, append-only command queue.

Callers append commands and return immediately; an engine step later applies
them in number order and writes each result back onto the same record. Numbers
are strictly increasing per engine, starting at 0, which lets a step resume
exactly after the engine's ``processed_input_number`` watermark.
"""

import asyncio
from typing import Any, Dict, List, Optional

from .logging_utils import LOG_TAG_COMMAND, env_flag, log_command
from .persistence import INPUTS, DocumentStore
from .schemas import InputRecord, InputResult

DEBUG_INPUTS = env_flag("DEBUG_INPUTS")


def _key(number: int) -> str:
    # Zero padded so stores that list by key also list in number order.
    return f"{number:012d}"


class InputQueue:
    """Per-engine input log on top of a DocumentStore.

    Numbers come from the store on every append and are claimed with an
    insert-if-absent write, so any number of queue instances can share one
    engine without reusing a number.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._lock = asyncio.Lock()

    async def _last_number(self, engine_id: str) -> int:
        documents = await self.store.list_documents(INPUTS, engine_id)
        return max((doc["number"] for doc in documents), default=-1)

    async def append(
        self,
        engine_id: str,
        name: str,
        args: Optional[Dict[str, Any]] = None,
        received_at: float = 0.0,
    ) -> InputRecord:
        """Durably enqueue a command and return its record (with its number)."""
        async with self._lock:
            number = await self._last_number(engine_id) + 1
            while True:
                record = InputRecord(
                    engine_id=engine_id,
                    number=number,
                    name=name,
                    args=dict(args or {}),
                    received_at=received_at,
                )
                if await self.store.insert(INPUTS, engine_id, _key(number), record.model_dump(mode="json")):
                    break
                # Another producer claimed this number first.
                number += 1

        if DEBUG_INPUTS:
            log_command(f"{LOG_TAG_COMMAND} queued #{number} {name} {record.args}")
        return record

    async def get(self, engine_id: str, number: int) -> Optional[InputRecord]:
        document = await self.store.get(INPUTS, engine_id, _key(number))
        return InputRecord.model_validate(document) if document else None

    async def pending(
        self,
        engine_id: str,
        after: Optional[int],
        limit: int,
    ) -> List[InputRecord]:
        """Inputs numbered above ``after`` (all of them when None), ascending, at most ``limit``."""
        floor = -1 if after is None else after
        records = [
            InputRecord.model_validate(doc)
            for doc in await self.store.list_documents(INPUTS, engine_id)
            if doc["number"] > floor
        ]
        records.sort(key=lambda record: record.number)
        return records[:limit]

    async def count_pending(self, engine_id: str, after: Optional[int]) -> int:
        floor = -1 if after is None else after
        documents = await self.store.list_documents(INPUTS, engine_id)
        return sum(1 for doc in documents if doc["number"] > floor)

    async def record_result(self, record: InputRecord, result: InputResult) -> InputRecord:
        """Attach ``result`` to a stored input. Results are write-once.

        Raises:
            ValueError: If the input already has a result
            KeyError: If the input is not in the queue
        """
        stored = await self.get(record.engine_id, record.number)
        if stored is None:
            raise KeyError(f"Input #{record.number} of engine {record.engine_id} not found")
        if stored.result is not None:
            raise ValueError(f"Input #{record.number} of engine {record.engine_id} already has a result")

        stored.result = result
        await self.store.upsert(INPUTS, record.engine_id, _key(record.number), stored.model_dump(mode="json"))
        return stored

    async def status(self, engine_id: str, number: int) -> Optional[Dict[str, Any]]:
        """Poll one input: ``processed``, ``success``, ``result`` and ``error``."""
        record = await self.get(engine_id, number)
        if record is None:
            return None
        if record.result is None:
            return {"processed": False, "success": None, "result": None, "error": None}
        return {
            "processed": True,
            "success": record.result.success,
            "result": record.result.value,
            "error": record.result.message,
        }
