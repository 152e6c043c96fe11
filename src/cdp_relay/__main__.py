"""
CDP Relay 主入口

可透過 python -m cdp_relay 或 cdp-relay 指令啟動伺服器
"""

import logging
import sys

import uvicorn

from cdp_relay import __version__
from cdp_relay.base.logging_config import setup_logging
from cdp_relay.config import (
    AGENT_TIMEOUT,
    CDP_PATH,
    CONSOLE_LOG_LEVEL,
    EXTENSION_PATH,
    FILE_LOG_LEVEL,
    LOG_DIR,
    LOG_FILE,
    RELAY_HOST,
    RELAY_PORT,
    RELAY_TOKEN,
)


def main():
    """主函式"""
    # 設定日誌
    setup_logging(
        log_file=LOG_FILE,
        console_log_level=CONSOLE_LOG_LEVEL,
        file_log_level=FILE_LOG_LEVEL,
        log_dir=LOG_DIR,
    )

    # 取得 app 實例
    from cdp_relay.app import app

    logger = logging.getLogger(__name__)
    logger.info(f"🚀 CDP Relay 啟動 [v{__version__}]")
    logger.info(f"🐍 Python: {sys.version}")
    logger.info(f"🔌 Extension endpoint: ws://{RELAY_HOST}:{RELAY_PORT}{EXTENSION_PATH}")
    logger.info(f"🔌 CDP endpoint: ws://{RELAY_HOST}:{RELAY_PORT}{CDP_PATH}")

    if AGENT_TIMEOUT:
        logger.info(f"⏱️ Extension 回應逾時: {AGENT_TIMEOUT}s")
    else:
        logger.info("⏱️ Extension 回應逾時: 無限制")

    if RELAY_TOKEN:
        logger.info("🔐 WebSocket Token 認證: 已啟用")
    else:
        logger.warning("⚠️ WebSocket Token 認證: 已停用（開發模式）")

    # 啟動伺服器
    uvicorn.run(app, host=RELAY_HOST, port=RELAY_PORT, log_config=None)


if __name__ == "__main__":
    main()
