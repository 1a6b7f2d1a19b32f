"""
Shared fixtures: deterministic keyword-count embeddings and opened stores.
"""

from __future__ import annotations

import pytest

VOCAB = ["fed", "rate", "inflation", "apple", "earnings", "oil", "crypto", "election"]
DIMS = len(VOCAB)


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCAB]


class KeywordEmbedder:
    """Custom embed_fn that counts vocabulary words; can be told to fail."""

    def __init__(self):
        self.calls: list[tuple[list[str], str]] = []
        self.fail_modes: set[str] = set()
        self.fail_batch_size: int | None = None

    def __call__(self, texts, mode):
        self.calls.append((list(texts), mode))
        if mode in self.fail_modes:
            raise RuntimeError(f"embedding offline for {mode}")
        if self.fail_batch_size is not None and len(texts) == self.fail_batch_size:
            raise RuntimeError("batch rejected")
        return [keyword_vector(t) for t in texts]


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def embedding_config(embedder):
    from openintel import EmbeddingConfig
    return EmbeddingConfig(provider="custom", dimensions=DIMS, embed_fn=embedder)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "intel.db")


@pytest.fixture
def intel(db_path, embedding_config):
    """Store with the custom embedder and the numpy flat vector backend."""
    from openintel import OpenIntel
    store = OpenIntel(db_path, embedding=embedding_config, vec_backend="flat")
    yield store
    store.close()


@pytest.fixture
def plain_intel(db_path):
    """Store with no embedding provider and no vector index."""
    from openintel import OpenIntel
    store = OpenIntel(db_path, vec_backend="none")
    yield store
    store.close()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate from OPENINTEL_* variables and any user config file."""
    import os
    for key in list(os.environ):
        if key.startswith("OPENINTEL_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    return tmp_path
