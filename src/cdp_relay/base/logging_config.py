"""
Relay 日誌設定

控制台依等級上色，檔案以大小輪替；uvicorn / websockets 等套件的 DEBUG 訊息一律壓到 INFO。
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# 只保留 INFO 以上的外部套件
QUIET_LOGGERS = ("asyncio", "uvicorn", "uvicorn.error", "uvicorn.access", "websockets", "httpx", "httpcore")

LOG_FORMAT = "[%(asctime)s][%(levelname)-8s][%(name)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 單檔上限與保留份數
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

DEFAULT_LOG_DIR = Path(__file__).resolve().parents[3] / "logs"

# 256 色 ANSI 前景色
_LEVEL_COLORS = {
    logging.DEBUG: "38;5;7",
    logging.INFO: "38;5;2",
    logging.WARNING: "38;5;3",
    logging.ERROR: "38;5;1",
    logging.CRITICAL: "38;5;6;48;5;1",
}


class ColoredFormatter(logging.Formatter):
    """依日誌等級為整行加上 ANSI 顏色"""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        code = _LEVEL_COLORS.get(record.levelno)
        return f"\033[{code}m{message}\033[0m" if code else message


def _file_handler(log_dir: Path, log_file: str, level: int) -> logging.Handler | None:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_dir / log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
    except OSError as e:
        sys.stderr.write(f"警告: 無法建立日誌檔案 {log_dir / log_file}: {e}\n")
        return None
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    formatter_cls = logging.Formatter if sys.platform == "win32" else ColoredFormatter
    handler.setFormatter(formatter_cls(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    log_file: str = "cdp_relay.log",
    console_log_level: int = logging.DEBUG,
    file_log_level: int = logging.WARNING,
    log_dir: str | None = None,
) -> None:
    """
    重新設定 root logger。

    Args:
        log_file: 日誌檔名（位於 log_dir 之下）
        console_log_level: 控制台等級，logging.NOTSET 表示不輸出到控制台
        file_log_level: 檔案等級，logging.NOTSET 表示不寫檔
        log_dir: 日誌目錄，預設為專案根目錄的 logs/
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    if file_log_level != logging.NOTSET:
        handler = _file_handler(Path(log_dir) if log_dir else DEFAULT_LOG_DIR, log_file, file_log_level)
        if handler is not None:
            root_logger.addHandler(handler)

    if console_log_level != logging.NOTSET:
        root_logger.addHandler(_console_handler(console_log_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)

    if root_logger.handlers:
        root_logger.debug("📝 日誌系統設定完成")
