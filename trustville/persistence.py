"""
DocumentStore interface for pluggable storage backends.

Every durable record in Trustville (worlds, engines, players, agents,
conversations, descriptions, messages, memories, cached embeddings, inputs)
is a JSON document addressed by three strings:

    (collection, scope, key)

``scope`` is the owner the document belongs to: the world id for entities,
the engine id for inputs, the agent id for memories. Backends only need
per-scope listing, upsert and delete; everything else is built on top.

Three included implementations:
1. InMemoryPersistence - dict-based storage, data lost on exit (default, tests)
2. JsonPersistence - one pretty-printed JSON file per document (small towns, debugging)
3. PostgresPersistence - one JSONB table behind an asyncpg pool (production)

Writes are independent upserts. A save that fails half way leaves the
documents already written in place; the next successful save overwrites
them by key, so no backend needs multi-document transactions.

Usage pattern:
    store = InMemoryPersistence()  # or JsonPersistence(), PostgresPersistence()
    await store.initialize()
    await store.upsert("worlds", world_id, world_id, record.model_dump(mode="json"))
    await store.close()
"""

import asyncio
import copy
import json
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config

try:  # Optional dependency (only needed for PostgresPersistence)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for json/memory usage
    asyncpg = None


Document = Dict[str, Any]

# Collection names shared by the world, engine, memory and input layers.
WORLDS = "worlds"
ENGINES = "engines"
PLAYERS = "players"
AGENTS = "agents"
CONVERSATIONS = "conversations"
DESCRIPTIONS = "descriptions"
MESSAGES = "messages"
MEMORIES = "memories"
EMBEDDINGS = "embeddings"
INPUTS = "inputs"


class DocumentStore(ABC):
    """Abstract base class for keyed document storage.

    All methods are async so database and file backends never block the event
    loop that runs engine steps. ``initialize()`` and ``close()`` manage
    connection pools, directories, etc.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Single documents: upsert(), get(), delete()
    3. Scopes: list_documents(), delete_scope()

    Returned documents are copies; mutating them never changes stored state.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the storage backend.

        Called once before the first step. Used to set up database
        connections, create tables, create directories, etc.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the storage backend.

        Releases pools and handles. Data written so far stays readable by a
        fresh store pointed at the same location.
        """
        pass

    @abstractmethod
    async def upsert(self, collection: str, scope: str, key: str, document: Document) -> None:
        """
        Insert or replace one document.

        Args:
            collection: Collection name (e.g. "agents")
            scope: Owner of the document (world id, engine id, agent id)
            key: Document key, unique within (collection, scope)
            document: JSON-compatible payload
        """
        pass

    @abstractmethod
    async def insert(self, collection: str, scope: str, key: str, document: Document) -> bool:
        """
        Insert one document only if the key is free.

        Used for append-only records (queued inputs), where an existing
        document must never be replaced.

        Returns:
            True if the document was written, False if the key was already taken
        """
        pass

    @abstractmethod
    async def get(self, collection: str, scope: str, key: str) -> Optional[Document]:
        """
        Fetch one document.

        Returns:
            The document if present, None otherwise
        """
        pass

    @abstractmethod
    async def list_documents(self, collection: str, scope: str) -> List[Document]:
        """
        Fetch every document of a collection within one scope.

        Returns:
            Documents in insertion/key order (callers that need a specific
            order sort the result themselves)
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, scope: str, key: str) -> bool:
        """
        Delete one document.

        Returns:
            True if a document was removed, False if it was already absent
        """
        pass

    @abstractmethod
    async def delete_scope(self, collection: str, scope: str) -> int:
        """
        Delete every document of a collection within one scope.

        Returns:
            Number of documents removed
        """
        pass


class InMemoryPersistence(DocumentStore):
    """In-memory storage using Python dicts (no database, no files).

    Storage structure:
    - documents: Dict[collection, Dict[(scope, key), document]]

    Perfect for unit tests and short demo runs. Data is lost when the process
    exits. Documents are deep-copied on the way in and out so callers cannot
    alias stored state.
    """

    def __init__(self):
        """Initialize in-memory storage."""
        self.documents: Dict[str, Dict[tuple[str, str], Document]] = {}

    async def initialize(self) -> None:
        """No-op for in-memory storage."""
        pass

    async def close(self) -> None:
        """
        No-op: data is kept after close so callers can inspect it post-run.
        Use delete_scope() for explicit cleanup.
        """
        pass

    async def upsert(self, collection: str, scope: str, key: str, document: Document) -> None:
        self.documents.setdefault(collection, {})[(scope, key)] = copy.deepcopy(document)

    async def insert(self, collection: str, scope: str, key: str, document: Document) -> bool:
        bucket = self.documents.setdefault(collection, {})
        if (scope, key) in bucket:
            return False
        bucket[(scope, key)] = copy.deepcopy(document)
        return True

    async def get(self, collection: str, scope: str, key: str) -> Optional[Document]:
        document = self.documents.get(collection, {}).get((scope, key))
        return copy.deepcopy(document) if document is not None else None

    async def list_documents(self, collection: str, scope: str) -> List[Document]:
        bucket = self.documents.get(collection, {})
        return [copy.deepcopy(doc) for (doc_scope, _), doc in bucket.items() if doc_scope == scope]

    async def delete(self, collection: str, scope: str, key: str) -> bool:
        return self.documents.get(collection, {}).pop((scope, key), None) is not None

    async def delete_scope(self, collection: str, scope: str) -> int:
        bucket = self.documents.get(collection, {})
        keys = [item for item in bucket if item[0] == scope]
        for item in keys:
            del bucket[item]
        return len(keys)


class PostgresPersistence(DocumentStore):
    """PostgreSQL-backed storage using one JSONB table and an asyncpg pool.

    Schema (created by initialize() when missing):

        documents(
            collection text, scope text, key text,
            document jsonb, updated_at timestamptz,
            PRIMARY KEY (collection, scope, key)
        )

    Every upsert is a single ``INSERT ... ON CONFLICT DO UPDATE`` so a failing
    write never touches other documents.
    """

    CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            scope TEXT NOT NULL,
            key TEXT NOT NULL,
            document JSONB NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (collection, scope, key)
        )
    """

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresPersistence. Install with `pip install asyncpg`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.database_url)
            async with self.pool.acquire() as conn:
                await conn.execute(self.CREATE_TABLE)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def upsert(self, collection: str, scope: str, key: str, document: Document) -> None:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            INSERT INTO documents (collection, scope, key, document, updated_at)
            VALUES ($1, $2, $3, $4::jsonb, now())
            ON CONFLICT (collection, scope, key) DO UPDATE
            SET document = $4::jsonb, updated_at = now()
        """

        async with self.pool.acquire() as conn:
            await conn.execute(query, collection, scope, key, json.dumps(document))

    async def insert(self, collection: str, scope: str, key: str, document: Document) -> bool:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            INSERT INTO documents (collection, scope, key, document, updated_at)
            VALUES ($1, $2, $3, $4::jsonb, now())
            ON CONFLICT (collection, scope, key) DO NOTHING
        """

        async with self.pool.acquire() as conn:
            status = await conn.execute(query, collection, scope, key, json.dumps(document))
        # "INSERT 0 1" when written, "INSERT 0 0" on conflict
        return status.endswith(" 1")

    async def get(self, collection: str, scope: str, key: str) -> Optional[Document]:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            SELECT document
            FROM documents
            WHERE collection = $1 AND scope = $2 AND key = $3
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, collection, scope, key)

        if not row:
            return None
        return json.loads(row["document"])

    async def list_documents(self, collection: str, scope: str) -> List[Document]:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            SELECT document
            FROM documents
            WHERE collection = $1 AND scope = $2
            ORDER BY key
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, collection, scope)

        return [json.loads(row["document"]) for row in rows]

    async def delete(self, collection: str, scope: str, key: str) -> bool:
        assert self.pool is not None, "Persistence not initialized"

        query = "DELETE FROM documents WHERE collection = $1 AND scope = $2 AND key = $3"

        async with self.pool.acquire() as conn:
            status = await conn.execute(query, collection, scope, key)
        return status.endswith(" 1")

    async def delete_scope(self, collection: str, scope: str) -> int:
        assert self.pool is not None, "Persistence not initialized"

        query = "DELETE FROM documents WHERE collection = $1 AND scope = $2"

        async with self.pool.acquire() as conn:
            status = await conn.execute(query, collection, scope)
        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(status.split()[-1])


class JsonPersistence(DocumentStore):
    """File-based storage using one JSON file per document.

    Directory structure:
    ```
    {base_path}/
      worlds/
        {world_id}/
          {world_id}.json
      agents/
        {world_id}/
          0.json
          3.json
      inputs/
        {engine_id}/
          0.json
          1.json
    ```

    Files are pretty-printed (indent=2) so a town can be inspected or edited
    by hand. All file I/O runs through asyncio.to_thread. No locking: only one
    engine process should write a given base_path.
    """

    def __init__(self, base_path: Path | str | None = None):
        self.base_path = Path(base_path) if base_path is not None else Config.DATA_DIR

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        # Nothing to clean up for JSON persistence
        return None

    async def upsert(self, collection: str, scope: str, key: str, document: Document) -> None:
        path = self._doc_path(collection, scope, key)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_text, json.dumps(document, indent=2), "utf-8")

    async def insert(self, collection: str, scope: str, key: str, document: Document) -> bool:
        path = self._doc_path(collection, scope, key)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)

        def _create() -> bool:
            # Mode "x" fails if the file exists, so two writers cannot both claim a key.
            try:
                with path.open("x", encoding="utf-8") as handle:
                    handle.write(json.dumps(document, indent=2))
            except FileExistsError:
                return False
            return True

        return await asyncio.to_thread(_create)

    async def get(self, collection: str, scope: str, key: str) -> Optional[Document]:
        path = self._doc_path(collection, scope, key)
        if not path.exists():
            return None
        text = await asyncio.to_thread(path.read_text, "utf-8")
        return json.loads(text)

    async def list_documents(self, collection: str, scope: str) -> List[Document]:
        directory = self._scope_dir(collection, scope)
        if not directory.exists():
            return []

        def _read_all() -> List[Document]:
            return [
                json.loads(path.read_text("utf-8"))
                for path in sorted(directory.glob("*.json"))
            ]

        return await asyncio.to_thread(_read_all)

    async def delete(self, collection: str, scope: str, key: str) -> bool:
        path = self._doc_path(collection, scope, key)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        return True

    async def delete_scope(self, collection: str, scope: str) -> int:
        directory = self._scope_dir(collection, scope)
        if not directory.exists():
            return 0
        count = len(list(directory.glob("*.json")))
        await asyncio.to_thread(shutil.rmtree, directory)
        return count

    def _scope_dir(self, collection: str, scope: str) -> Path:
        return self.base_path / collection / _safe_name(scope)

    def _doc_path(self, collection: str, scope: str, key: str) -> Path:
        return self._scope_dir(collection, scope) / f"{_safe_name(key)}.json"


def _safe_name(value: str) -> str:
    """Make an id usable as a file name."""
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in str(value))
