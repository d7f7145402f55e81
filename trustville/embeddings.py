"""Text embeddings, similarity and a content-addressed embedding cache.

The memory store only needs a function ``text -> fixed-length vector``.
``HashingEmbedder`` is the built-in, dependency-free choice: characters, words
and word bigrams are hashed into buckets and the vector is L2-normalised.
Anything with an async ``embed(text)`` method (a remote model client, say)
can be passed instead.

The cache functions are plain module-level coroutines that take the document
store as their first argument, so the cache has no hidden shared state and
works against any backend.
"""

from __future__ import annotations

import hashlib
import math
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .config import Config
from .errors import EmbeddingUnavailableError
from .logging_utils import LOG_TAG_ERROR, log_error
from .persistence import EMBEDDINGS, DocumentStore

CACHE_SCOPE = "shared"

COMMON_PHRASES = [
    "Hello, how are you?",
    "Good morning!",
    "Good evening!",
    "How was your day?",
    "Nice weather today",
    "What are you up to?",
    "See you later!",
    "Take care!",
    "It's good to see you",
    "I'm doing well",
    "Thanks for asking",
    "That's interesting",
    "That makes sense",
    "I'm not sure",
    "That's a good point",
]


class EmbeddingFunction(Protocol):
    """Anything that turns text into a fixed-length vector."""

    async def embed(self, text: str) -> List[float]:
        ...


def _string_hash(value: str) -> int:
    """Stable 32-bit rolling hash (h * 31 + c), returned as a non-negative int."""
    h = 0
    for ch in value:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


class HashingEmbedder:
    """Deterministic bag-of-features embedder.

    Features:
    - every character adds 1.0 to bucket ``ord(char) % dimension``
    - every lower-cased word adds 2.0 to ``hash(word) % dimension``
    - every adjacent word pair adds 1.5 to ``hash("w1 w2") % dimension``
    """

    def __init__(self, dimension: Optional[int] = None) -> None:
        self.dimension = dimension or Config.EMBEDDING_DIMENSION

    def embed_sync(self, text: str) -> List[float]:
        dimension = self.dimension
        vector = [0.0] * dimension

        for ch in text:
            vector[ord(ch) % dimension] += 1.0

        words = [word for word in text.lower().split() if word]
        for word in words:
            vector[_string_hash(word) % dimension] += 2.0
        for first, second in zip(words, words[1:]):
            vector[_string_hash(f"{first} {second}") % dimension] += 1.5

        magnitude = math.sqrt(sum(value * value for value in vector))
        if magnitude > 0:
            vector = [value / magnitude for value in vector]
        return vector

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)


def cosine_similarity(first: Sequence[float], second: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 for empty, zero or mismatched vectors."""
    if len(first) != len(second) or not first:
        return 0.0

    dot = norm_first = norm_second = 0.0
    for a, b in zip(first, second):
        dot += a * b
        norm_first += a * a
        norm_second += b * b

    if norm_first == 0 or norm_second == 0:
        return 0.0
    return dot / (math.sqrt(norm_first) * math.sqrt(norm_second))


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


async def embed_with_retries(
    embedder: EmbeddingFunction,
    text: str,
    *,
    max_attempts: Optional[int] = None,
) -> List[float]:
    """Call ``embedder.embed`` and retry transient failures.

    Only ``EmbeddingUnavailableError``, ``ConnectionError`` and ``TimeoutError``
    are retried; anything else propagates on the first attempt.
    """
    max_attempts = max_attempts or Config.EMBEDDING_MAX_ATTEMPTS
    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type((EmbeddingUnavailableError, ConnectionError, TimeoutError)),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_error(f"{LOG_TAG_ERROR} Embedding retry {attempt_number}/{max_attempts}")
            return await embedder.embed(text)

    raise RuntimeError("Embedding retry loop exited unexpectedly")


# ============================================================================
# Cache service
# ============================================================================


async def get_cached_embedding(
    store: DocumentStore,
    text: str,
    embedder: Optional[EmbeddingFunction] = None,
    *,
    now: Optional[float] = None,
) -> List[float]:
    """Return the embedding for ``text``, computing and caching it on a miss."""
    key = text_hash(text)
    cached = await store.get(EMBEDDINGS, CACHE_SCOPE, key)
    if cached is not None:
        return cached["embedding"]

    embedding = await embed_with_retries(embedder or HashingEmbedder(), text)
    await store.upsert(
        EMBEDDINGS,
        CACHE_SCOPE,
        key,
        {
            "text_hash": key,
            "embedding": embedding,
            "created_at": time.time() if now is None else now,
        },
    )
    return embedding


async def batch_get_embeddings(
    store: DocumentStore,
    texts: Sequence[str],
    embedder: Optional[EmbeddingFunction] = None,
) -> List[List[float]]:
    return [await get_cached_embedding(store, text, embedder) for text in texts]


async def find_similar_texts(
    store: DocumentStore,
    query: str,
    embedder: Optional[EmbeddingFunction] = None,
    *,
    threshold: float = 0.7,
    limit: int = 10,
) -> List[Dict[str, Any]]:
    """Scan cached embeddings for vectors close to ``query``.

    Returns dicts with ``text_hash``, ``embedding`` and ``similarity``, best first.
    """
    query_embedding = await embed_with_retries(embedder or HashingEmbedder(), query)
    matches: List[Dict[str, Any]] = []
    for entry in await store.list_documents(EMBEDDINGS, CACHE_SCOPE):
        similarity = cosine_similarity(query_embedding, entry["embedding"])
        if similarity >= threshold:
            matches.append(
                {
                    "text_hash": entry["text_hash"],
                    "embedding": entry["embedding"],
                    "similarity": similarity,
                }
            )

    matches.sort(key=lambda item: item["similarity"], reverse=True)
    return matches[:limit]


async def cleanup_cache(store: DocumentStore, max_entries: int = 10000) -> int:
    """Drop the oldest cache entries above ``max_entries``. Returns how many were removed."""
    entries = await store.list_documents(EMBEDDINGS, CACHE_SCOPE)
    if len(entries) <= max_entries:
        return 0

    entries.sort(key=lambda entry: entry.get("created_at", 0.0))
    stale = entries[: len(entries) - max_entries]
    for entry in stale:
        await store.delete(EMBEDDINGS, CACHE_SCOPE, entry["text_hash"])
    return len(stale)


async def cache_stats(store: DocumentStore) -> Dict[str, float]:
    entries = await store.list_documents(EMBEDDINGS, CACHE_SCOPE)
    if not entries:
        return {
            "total_entries": 0,
            "oldest_entry": 0.0,
            "newest_entry": 0.0,
            "average_embedding_magnitude": 0.0,
        }

    created = [entry.get("created_at", 0.0) for entry in entries]
    magnitudes = [
        math.sqrt(sum(value * value for value in entry["embedding"]))
        for entry in entries
    ]
    return {
        "total_entries": len(entries),
        "oldest_entry": min(created),
        "newest_entry": max(created),
        "average_embedding_magnitude": sum(magnitudes) / len(magnitudes),
    }


async def precompute_common_embeddings(
    store: DocumentStore,
    embedder: Optional[EmbeddingFunction] = None,
) -> None:
    """Warm the cache with greetings and small-talk phrases."""
    await batch_get_embeddings(store, COMMON_PHRASES, embedder)
