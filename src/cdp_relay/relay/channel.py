"""
WebSocket 通道介面

Connection Manager 只依賴兩個操作：送出文字訊息與關閉連線。
WebSocketChannel 將 FastAPI (Starlette) 的 WebSocket 包裝成此介面。
"""

import logging
from typing import Protocol

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from cdp_relay.schemas import RelayError

logger = logging.getLogger(__name__)

# WebSocket 正常關閉代碼
NORMAL_CLOSURE = 1000
# 政策違規（認證失敗）
POLICY_VIOLATION = 1008


class ChannelClosedError(RelayError):
    """通道已關閉，無法送出訊息"""


class Channel(Protocol):
    """雙向文字訊息通道"""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...


class WebSocketChannel:
    """
    FastAPI WebSocket 通道轉接器

    Args:
        websocket: 已 accept 的 WebSocket
        role: 通道角色（"cdp" 或 "extension"），僅用於日誌
    """

    def __init__(self, websocket: WebSocket, role: str) -> None:
        self._websocket = websocket
        self.role = role

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.application_state == WebSocketState.CONNECTED
            and self._websocket.client_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        if not self.is_open:
            raise ChannelClosedError(f"{self.role} channel is closed")
        try:
            await self._websocket.send_text(data)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ChannelClosedError(f"{self.role} channel is closed") from e

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if not self.is_open:
            logger.debug(f"{self.role} 通道已關閉，略過 close({code})")
            return
        try:
            await self._websocket.close(code=code, reason=reason)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug(f"{self.role} 通道關閉時發生錯誤: {e}")

    async def receive_text(self) -> str:
        """接收下一則訊息（二進位訊息以 UTF-8 解碼），連線中斷時拋出 WebSocketDisconnect"""
        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", NORMAL_CLOSURE), message.get("reason"))
        if message.get("text") is not None:
            return message["text"]
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        return f"WebSocketChannel(role={self.role!r}, open={self.is_open})"
