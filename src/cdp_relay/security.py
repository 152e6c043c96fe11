"""
安全與認證模組

處理 WebSocket 端點的 Token 驗證
"""
import hmac
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# 用於傳遞 Token 的 query string 參數
TOKEN_QUERY_PARAM = "token"


def verify_channel_token(websocket: WebSocket, expected_token: str) -> bool:
    """
    驗證 WebSocket 連線的 Token

    Args:
        websocket: FastAPI WebSocket 物件
        expected_token: 設定的 Token，空字串表示不需認證（開發模式）

    Returns:
        bool: 驗證是否通過
    """
    if not expected_token:
        return True

    token = websocket.query_params.get(TOKEN_QUERY_PARAM, "")
    if hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        return True

    client_host = websocket.client.host if websocket.client else "unknown"
    if not token:
        logger.warning(f"連線缺少 Token: {client_host} {websocket.url.path}")
    else:
        logger.warning(f"無效的連線 Token 嘗試: {client_host} {websocket.url.path}")
    return False
