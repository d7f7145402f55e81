"""Tests for the hashing embedder, cosine similarity and the embedding cache."""

import math

import pytest

from trustville.embeddings import (
    CACHE_SCOPE,
    HashingEmbedder,
    cache_stats,
    cleanup_cache,
    cosine_similarity,
    embed_with_retries,
    find_similar_texts,
    get_cached_embedding,
    precompute_common_embeddings,
    COMMON_PHRASES,
)
from trustville.errors import EmbeddingUnavailableError
from trustville.persistence import EMBEDDINGS, InMemoryPersistence


class CountingEmbedder:
    def __init__(self) -> None:
        self.calls = 0
        self.inner = HashingEmbedder(dimension=16)

    async def embed(self, text: str):
        self.calls += 1
        return self.inner.embed_sync(text)


class FlakyEmbedder:
    """Fails ``failures`` times with ``error`` before answering."""

    def __init__(self, failures: int, error: Exception) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    async def embed(self, text: str):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return [1.0, 0.0]


def test_hashing_embedder_is_normalised_and_deterministic():
    embedder = HashingEmbedder()
    vector = embedder.embed_sync("Good morning, neighbour")

    assert len(vector) == 384
    assert math.sqrt(sum(v * v for v in vector)) == pytest.approx(1.0)
    assert vector == HashingEmbedder().embed_sync("Good morning, neighbour")


def test_empty_text_embeds_to_zero_vector():
    assert HashingEmbedder(dimension=8).embed_sync("") == [0.0] * 8


def test_cosine_similarity_edge_cases():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([], []) == 0.0


def test_similar_texts_score_higher():
    embedder = HashingEmbedder()
    base = embedder.embed_sync("the cat sat on the mat")
    close = embedder.embed_sync("the cat sat on a mat")
    far = embedder.embed_sync("quarterly revenue projections")
    assert cosine_similarity(base, close) > cosine_similarity(base, far)


@pytest.mark.asyncio
async def test_cache_returns_stored_vector_for_repeated_text():
    store = InMemoryPersistence()
    embedder = CountingEmbedder()

    first = await get_cached_embedding(store, "Hello there", embedder, now=1.0)
    second = await get_cached_embedding(store, "Hello there", embedder, now=2.0)

    assert first == second
    assert embedder.calls == 1
    assert len(await store.list_documents(EMBEDDINGS, CACHE_SCOPE)) == 1


@pytest.mark.asyncio
async def test_retries_transient_failures():
    embedder = FlakyEmbedder(failures=2, error=EmbeddingUnavailableError("busy"))
    assert await embed_with_retries(embedder, "hi", max_attempts=3) == [1.0, 0.0]
    assert embedder.calls == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    embedder = FlakyEmbedder(failures=5, error=ConnectionError("down"))
    with pytest.raises(ConnectionError):
        await embed_with_retries(embedder, "hi", max_attempts=2)
    assert embedder.calls == 2


@pytest.mark.asyncio
async def test_does_not_retry_programming_errors():
    embedder = FlakyEmbedder(failures=5, error=ValueError("bad input"))
    with pytest.raises(ValueError):
        await embed_with_retries(embedder, "hi", max_attempts=3)
    assert embedder.calls == 1


@pytest.mark.asyncio
async def test_cache_cleanup_drops_oldest_entries():
    store = InMemoryPersistence()
    embedder = CountingEmbedder()
    for i, text in enumerate(["one", "two", "three"]):
        await get_cached_embedding(store, text, embedder, now=float(i))

    assert await cleanup_cache(store, max_entries=1) == 2
    stats = await cache_stats(store)
    assert stats["total_entries"] == 1
    assert stats["oldest_entry"] == stats["newest_entry"] == 2.0
    assert stats["average_embedding_magnitude"] == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_cache_stats_when_empty():
    stats = await cache_stats(InMemoryPersistence())
    assert stats["total_entries"] == 0


@pytest.mark.asyncio
async def test_find_similar_texts():
    store = InMemoryPersistence()
    embedder = CountingEmbedder()
    await get_cached_embedding(store, "hello world", embedder)
    await get_cached_embedding(store, "zebra crossing", embedder)

    matches = await find_similar_texts(store, "hello world", embedder, threshold=0.99)
    assert len(matches) == 1
    assert matches[0]["similarity"] == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_precompute_common_embeddings():
    store = InMemoryPersistence()
    await precompute_common_embeddings(store, CountingEmbedder())
    assert len(await store.list_documents(EMBEDDINGS, CACHE_SCOPE)) == len(COMMON_PHRASES)
