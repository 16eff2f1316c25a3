from __future__ import annotations

import asyncio
import sys

from poifinder.core.config import settings
from poifinder.core.logging import configure_logging
from poifinder.core.orchestrator import BulkSearchOrchestrator
from poifinder.core.tasks import TaskRegistry
from poifinder.providers.amap import AmapConfig, AmapProvider
from poifinder.regions import RegionDirectory
from poifinder.storage.json_store import JsonFileStore


async def main(argv: list[str]) -> int:
    if len(argv) < 2:
        print("usage: python -m poifinder.core.run_example KEYWORD REGION [REGION ...]", file=sys.stderr)
        return 2
    keyword, regions = argv[0], argv[1:]

    if not settings.amap_key:
        raise ValueError(
            "AMAP_KEY is not set. "
            "Add it to the repo root .env or export it in the shell."
        )
    configure_logging(settings.log_level)

    directory = RegionDirectory.from_file(settings.regions_file) if settings.regions_file else RegionDirectory()
    cities = directory.expand(regions)

    cfg = AmapConfig(api_key=settings.amap_key, base_url=settings.amap_base_url)
    async with AmapProvider(cfg) as provider:
        orchestrator = BulkSearchOrchestrator(
            provider,
            JsonFileStore(settings.data_dir),
            TaskRegistry(retention_seconds=settings.task_retention_s),
            settings,
        )
        result = await orchestrator.bulk_search(keyword, cities)

    print(f"Got {result.total_results} POIs across {len(cities)} regions; saved to {result.handle}")
    for item in result.province_breakdown:
        print(f"  {item.region}: {item.count}")
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main(sys.argv[1:])))

if __name__ == "__main__":
    cli()
