"""启动 API 服务"""

import logging
import sys
from pathlib import Path

import uvicorn

backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from debt_market.core.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main():
    settings = get_settings()
    uvicorn.run(
        "debt_market.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,  # 沿用上面的 basicConfig
    )


if __name__ == "__main__":
    main()
