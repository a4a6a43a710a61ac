"""手动执行一轮索引服务同步并打印结果

用法: python scripts/sync_once.py
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from debt_market.core.config import get_settings
from debt_market.core.db import Database
from debt_market.services.indexer_client import IndexerClient
from debt_market.services.sync_engine import SyncEngine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def main():
    settings = get_settings()
    database = Database(settings.database_url)
    client = IndexerClient.from_settings(settings)
    try:
        await database.init_models()
        engine = SyncEngine(database.session_maker, client, interval_seconds=settings.sync_interval_seconds)
        report = await engine.run_once()
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        if not report.ok:
            sys.exit(1)
    finally:
        await client.close()
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(main())
