"""
Build the UI catalogs used by ``ai-coder remix-route``.

Usage:
    python scripts/build_catalog.py collect-icons
    OPENAI_API_KEY=sk-... python scripts/build_catalog.py embed-icons
    OPENAI_API_KEY=sk-... python scripts/build_catalog.py embed-components

``embed-components`` expects ``shadcn-ui/metadata.json`` to already exist
in the catalog directory (``AI_CODER_CATALOG_DIR`` or ``--catalog-dir``).
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path

import httpx

from ai_coder.catalog import (
    LUCIDE_DIR,
    SHADCN_DIR,
    CatalogMetadata,
    build_index,
    component_items,
    export_names,
    icon_items,
    load_icons,
)
from ai_coder.config import Settings
from ai_coder.index import Embedder, VectorIndex
from ai_coder.provider import OpenAIProvider

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger("build_catalog")

LUCIDE_BUNDLE_URL = "https://esm.sh/v135/lucide-react@0.293.0/es2022/lucide-react.mjs"


async def collect_icons(catalog_dir: Path, url: str) -> None:
    async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()
    icons = export_names(response.text)
    workdir = catalog_dir / LUCIDE_DIR
    workdir.mkdir(parents=True, exist_ok=True)
    (workdir / "icons.json").write_text(json.dumps(icons, indent=2), encoding="utf8")
    logger.info(f"Collected {len(icons)} icon exports into {workdir / 'icons.json'}")


async def embed(items, settings: Settings, index_dir: Path, concurrency: int) -> None:
    embedder = Embedder(OpenAIProvider.from_settings(settings), settings.embedding_model)
    index = VectorIndex(index_dir)
    count = await build_index(items, embedder, index, concurrency=concurrency)
    logger.info(f"Wrote {count} vectors to {index_dir}")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("command", choices=["collect-icons", "embed-icons", "embed-components"])
    parser.add_argument("--catalog-dir", type=Path, default=None)
    parser.add_argument("--concurrency", type=int, default=20)
    parser.add_argument("--url", default=LUCIDE_BUNDLE_URL)
    args = parser.parse_args()

    settings = Settings.from_env(catalog_dir=args.catalog_dir)
    catalog_dir = Path(settings.catalog_dir)

    if args.command == "collect-icons":
        asyncio.run(collect_icons(catalog_dir, args.url))
    elif args.command == "embed-icons":
        icons = load_icons(catalog_dir / LUCIDE_DIR / "icons.json")
        asyncio.run(embed(
            icon_items(icons), settings,
            catalog_dir / LUCIDE_DIR / "index", args.concurrency,
        ))
    else:
        metadata = CatalogMetadata.load(catalog_dir / SHADCN_DIR / "metadata.json")
        asyncio.run(embed(
            component_items(metadata), settings,
            catalog_dir / SHADCN_DIR / "index", args.concurrency,
        ))


if __name__ == "__main__":
    main()
