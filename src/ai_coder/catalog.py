"""UI catalogs used by the route workflow.

Two catalogs live under ``Settings.catalog_dir``:

* ``lucide-react/``: ``icons.json`` (export names) and ``index/``
  (one vector per icon, metadata ``{"icon": name}``).
* ``shadcn-ui/``: ``metadata.json`` (see :class:`CatalogMetadata`) and
  ``index/`` (one vector per component, metadata ``{"name": name}``).

Both indexes are built offline by ``scripts/build_catalog.py``.
"""

import asyncio
import json
import logging
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from ai_coder.errors import ConfigurationError
from ai_coder.index import Embedder, VectorIndex

logger = logging.getLogger(__name__)

LUCIDE_DIR = "lucide-react"
SHADCN_DIR = "shadcn-ui"
MAX_EXAMPLE_TOKENS = 1600


class Component(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = ""
    import_statement: str = Field(default="", alias="importStatement")


class Examples(BaseModel):
    mappings: dict[str, list[str]] = Field(default_factory=dict)
    sources: dict[str, str] = Field(default_factory=dict)


class CatalogMetadata(BaseModel):
    """Component descriptions, import lines and usage examples."""

    components: dict[str, Component] = Field(default_factory=dict)
    examples: Examples = Field(default_factory=Examples)

    @classmethod
    def load(cls, path: Path | str) -> "CatalogMetadata":
        path = Path(path)
        try:
            return cls.model_validate_json(path.read_text(encoding="utf8"))
        except FileNotFoundError as e:
            raise ConfigurationError(f"Catalog metadata not found: {path}") from e

    def examples_for(self, name: str) -> list[str]:
        """Example sources for a component, in mapping order."""
        return [
            self.examples.sources[example_id]
            for example_id in self.examples.mappings.get(name, [])
            if example_id in self.examples.sources
        ]


def component_embedding_text(name: str, component: Component) -> str:
    return (
        f"COMPONENT NAME: {name}\n"
        f"COMPONENT DESCRIPTION: {component.description}\n"
        f"IMPORT STATEMENT:\n```ts\n{component.import_statement}\n```"
    )


_EXPORT_BLOCK = re.compile(r"export\s*\{([^}]*)\}")
_EXPORT_DECL = re.compile(
    r"export\s+(?:const|let|var|function|class)\s+([A-Za-z_$][\w$]*)"
)


def export_names(code: str) -> list[str]:
    """Names exported by an ES module, in source order, deduplicated."""
    names = []
    for block in _EXPORT_BLOCK.findall(code):
        for spec in block.split(","):
            spec = spec.strip()
            if spec:
                names.append(re.split(r"\s+as\s+", spec)[-1].strip())
    names.extend(_EXPORT_DECL.findall(code))
    return [n for n in dict.fromkeys(names) if n != "default"]


def examples_context(
    examples: list[str],
    encoding,
    max_tokens: int = MAX_EXAMPLE_TOKENS,
) -> str:
    """Join example sources into a prompt block capped at *max_tokens*.

    *encoding* is a tiktoken ``Encoding`` (anything with ``encode`` and
    ``decode``). The example that crosses the budget is cut at the
    token boundary; later examples are dropped.
    """
    used = 0
    parts = []
    for example in examples:
        if used >= max_tokens:
            break
        tokens = encoding.encode(example)
        if used + len(tokens) > max_tokens:
            tokens = tokens[: max_tokens - used]
            example = encoding.decode(tokens)
        used += len(tokens)
        parts.append(example)
    if not parts:
        return ""
    return "EXAMPLE COMPONENT USAGE:\n```\n" + "\n".join(parts) + "\n```\n\n"


def encoding_for(model: str):
    import tiktoken

    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


async def build_index(
    items: list[tuple[str, dict]],
    embedder: Embedder,
    index: VectorIndex,
    concurrency: int = 20,
) -> int:
    """Embed ``(text, metadata)`` pairs into *index* and save it.

    At most *concurrency* embedding requests run at once. The first
    failure cancels the remaining requests and propagates.
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def embed_one(text: str, metadata: dict):
        async with semaphore:
            return await embedder.embed(text), metadata

    tasks = [asyncio.create_task(embed_one(t, m)) for t, m in items]
    done = 0
    try:
        for next_done in asyncio.as_completed(tasks):
            vector, metadata = await next_done
            index.add(vector, metadata)
            done += 1
            logger.info(f"Embedded {done} of {len(tasks)}")
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    index.save()
    return done


def icon_items(icons: list[str]) -> list[tuple[str, dict]]:
    return [(icon, {"icon": icon}) for icon in icons]


def component_items(metadata: CatalogMetadata) -> list[tuple[str, dict]]:
    return [
        (component_embedding_text(name, component), {"name": name})
        for name, component in metadata.components.items()
    ]


def load_icons(path: Path | str) -> list[str]:
    return json.loads(Path(path).read_text(encoding="utf8"))
