"""初始化数据库脚本

用于创建数据库表（包括 orders 表上的部分唯一索引）
"""

import asyncio
import logging
import sys
from pathlib import Path

# 添加项目根目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from debt_market.core.config import get_settings
from debt_market.core.db import Database

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def main():
    """初始化数据库"""
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        logger.info("开始初始化数据库...")
        await database.init_models()
        logger.info("数据库初始化完成！")
        logger.info(f"数据库连接: {database.engine.url.render_as_string(hide_password=True)}")
    except Exception as e:
        logger.error(f"数据库初始化失败: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(main())
