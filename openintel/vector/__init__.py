"""
Optional vector index over intel entries.

:func:`open_vector_index` returns ``None`` when no backend could be opened;
callers branch on that handle instead of a global flag.
"""

from .index import FlatVectorIndex, SqliteVecIndex, VectorIndex, open_vector_index

__all__ = ["FlatVectorIndex", "SqliteVecIndex", "VectorIndex", "open_vector_index"]
