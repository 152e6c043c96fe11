"""
環境設定與常數

集中管理 CDP Relay 的所有配置項，從環境變數載入。
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# 基本設定
# ═══════════════════════════════════════════════════════════════════════════════
# 專案根目錄
PROJECT_ROOT = Path(__file__).parent.parent.parent

# 載入 .env 檔案
ENV_PATH = PROJECT_ROOT / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)
    logger.info(f"📁 已載入環境設定檔: {ENV_PATH}")


def parse_log_level(name: str, default: int) -> int:
    """
    將日誌等級名稱轉換為 logging 常數

    Args:
        name: 等級名稱（DEBUG、INFO...）或數字字串，空字串表示使用預設值
        default: 無法解析時的預設值

    Returns:
        int: logging 等級
    """
    value = (name or "").strip()
    if not value:
        return default
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    if isinstance(level, int):
        return level
    logger.warning(f"⚠️ 無法識別的日誌等級: {name}，改用預設值")
    return default


# ═══════════════════════════════════════════════════════════════════════════════
# 伺服器設定
# ═══════════════════════════════════════════════════════════════════════════════
RELAY_HOST = os.getenv("CDP_RELAY_HOST", "127.0.0.1")
RELAY_PORT = int(os.getenv("CDP_RELAY_PORT", "9988"))

# WebSocket 路徑
CDP_PATH = "/cdp"
EXTENSION_PATH = "/extension"

# ═══════════════════════════════════════════════════════════════════════════════
# Extension 轉發設定
# ═══════════════════════════════════════════════════════════════════════════════
# 轉發到 Extension 的指令等待逾時（秒），0 表示無限等待
AGENT_TIMEOUT = float(os.getenv("CDP_RELAY_AGENT_TIMEOUT", "0"))

# ═══════════════════════════════════════════════════════════════════════════════
# 安全設定
# ═══════════════════════════════════════════════════════════════════════════════
RELAY_TOKEN = os.getenv("CDP_RELAY_TOKEN", "")  # 連線 Token（query string: ?token=...）

if not RELAY_TOKEN:
    logger.debug("未設定 CDP_RELAY_TOKEN，WebSocket 端點不需認證")

# ═══════════════════════════════════════════════════════════════════════════════
# 日誌設定
# ═══════════════════════════════════════════════════════════════════════════════
LOG_DIR = os.getenv("CDP_RELAY_LOG_DIR", "") or None
LOG_FILE = os.getenv("CDP_RELAY_LOG_FILE", "cdp_relay.log")
CONSOLE_LOG_LEVEL = parse_log_level(os.getenv("CDP_RELAY_CONSOLE_LOG_LEVEL", ""), logging.DEBUG)
FILE_LOG_LEVEL = parse_log_level(os.getenv("CDP_RELAY_FILE_LOG_LEVEL", ""), logging.WARNING)
