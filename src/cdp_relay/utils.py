"""
輔助函數工具箱

包含訊息解碼與日誌格式化等通用工具函數
"""
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def decode_frame(raw: str | bytes) -> dict[str, Any] | None:
    """
    將 WebSocket 文字訊息解析為 JSON 物件

    Args:
        raw: 原始訊息

    Returns:
        dict: 解析後的訊息；無法解析或不是 JSON 物件時回傳 None
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def encode_frame(message: dict[str, Any]) -> str:
    """將訊息序列化為 JSON 文字"""
    return json.dumps(message, ensure_ascii=False)


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """截斷過長的字串"""
    if len(text) > max_length:
        return text[:max_length] + suffix
    return text
