"""Local similarity index over embedded catalog entries.

Vectors are L2-normalised and stored in a FAISS ``IndexFlatIP`` so the
inner product is cosine similarity. Metadata is kept in a parallel JSON
list. On disk an index is a directory with ``index.faiss`` and
``metadata.json``.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import faiss
import numpy as np

from ai_coder.errors import ConfigurationError
from ai_coder.provider import ModelProvider

logger = logging.getLogger(__name__)


@dataclass
class IndexItem:
    score: float
    metadata: dict


class VectorIndex:
    """FAISS inner-product index with per-vector metadata."""

    def __init__(self, directory: Path | str, dimension: int | None = None):
        self.directory = Path(directory)
        self.dimension = dimension
        self.index: faiss.IndexFlatIP | None = None
        self.metadata: list[dict] = []
        if dimension is not None:
            self.index = faiss.IndexFlatIP(dimension)

    @property
    def index_path(self) -> Path:
        return self.directory / "index.faiss"

    @property
    def metadata_path(self) -> Path:
        return self.directory / "metadata.json"

    def __len__(self) -> int:
        return 0 if self.index is None else self.index.ntotal

    @classmethod
    def load(cls, directory: Path | str) -> "VectorIndex":
        """Load an index written by :meth:`save`.

        Raises:
            ConfigurationError: If the directory holds no index.
        """
        store = cls(directory)
        if not store.index_path.exists() or not store.metadata_path.exists():
            raise ConfigurationError(
                f"No index found in {store.directory}. "
                "Build it with scripts/build_catalog.py."
            )
        store.index = faiss.read_index(str(store.index_path))
        store.dimension = store.index.d
        store.metadata = json.loads(store.metadata_path.read_text(encoding="utf8"))
        return store

    def save(self) -> None:
        if self.index is None:
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self.index, str(self.index_path))
        self.metadata_path.write_text(json.dumps(self.metadata), encoding="utf8")

    @staticmethod
    def _normalise(vectors) -> np.ndarray:
        arr = np.asarray(vectors, dtype=np.float32)
        if arr.ndim == 1:
            arr = arr.reshape(1, -1)
        arr = np.ascontiguousarray(arr)
        faiss.normalize_L2(arr)
        return arr

    def add(self, vector, metadata: dict) -> None:
        arr = self._normalise(vector)
        if self.index is None:
            self.dimension = arr.shape[1]
            self.index = faiss.IndexFlatIP(self.dimension)
        if arr.shape[1] != self.dimension:
            raise ValueError(
                f"Vector has dimension {arr.shape[1]}, index expects {self.dimension}"
            )
        self.index.add(arr)
        self.metadata.append(metadata)

    def query(self, vector, k: int) -> list[IndexItem]:
        """Return up to *k* stored items, most similar first."""
        if self.index is None or self.index.ntotal == 0 or k <= 0:
            return []
        query = self._normalise(vector)
        scores, indices = self.index.search(query, min(k, self.index.ntotal))
        results = []
        for score, idx in zip(scores[0], indices[0]):
            if idx == -1 or idx >= len(self.metadata):
                continue
            results.append(IndexItem(score=float(score), metadata=self.metadata[idx]))
        return results


class Embedder:
    """Text to vector through the provider's embeddings endpoint."""

    def __init__(self, provider: ModelProvider, model: str):
        self.provider = provider
        self.model = model

    async def embed(self, text: str) -> list[float]:
        return await self.provider.embed(text, self.model)
