"""
Binary layout of stored embeddings.

Each vector is a contiguous little-endian IEEE-754 float32 array whose
length is the store-wide dimensionality.  Both vector backends and the
sqlite-vec ``MATCH`` operand use exactly these bytes.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

FLOAT32_LE = np.dtype("<f4")


def pack(vector: Sequence[float]) -> bytes:
    """Serialise *vector* to little-endian float32 bytes."""
    return np.asarray(vector, dtype=FLOAT32_LE).tobytes()


def unpack(buf: bytes) -> np.ndarray:
    """Deserialise bytes produced by :func:`pack`."""
    if len(buf) % FLOAT32_LE.itemsize:
        raise ValueError(f"vector blob of {len(buf)} bytes is not float32-aligned")
    return np.frombuffer(buf, dtype=FLOAT32_LE).copy()
