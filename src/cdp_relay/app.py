"""
CDP Relay FastAPI 應用

WS /cdp        CDP Client（例如 Playwright connectOverCDP）
WS /extension  瀏覽器 Extension
GET /          健康檢查
GET /status    連線狀態
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from cdp_relay import __version__
from cdp_relay.config import AGENT_TIMEOUT, CDP_PATH, EXTENSION_PATH, RELAY_TOKEN
from cdp_relay.relay.channel import POLICY_VIOLATION, WebSocketChannel
from cdp_relay.relay.connection_manager import RelayConnectionManager
from cdp_relay.security import verify_channel_token

logger = logging.getLogger(__name__)


async def _accept_channel(websocket: WebSocket, role: str, expected_token: str) -> WebSocketChannel | None:
    """接受 WebSocket 連線並驗證 Token，驗證失敗時以 1008 關閉"""
    await websocket.accept()
    channel = WebSocketChannel(websocket, role)
    if not verify_channel_token(websocket, expected_token):
        await channel.close(POLICY_VIOLATION, "Invalid token")
        return None
    return channel


def create_app(manager: RelayConnectionManager | None = None, token: str | None = None) -> FastAPI:
    """
    建立 CDP Relay 應用

    Args:
        manager: 連線管理器，預設建立新的實例
        token: 連線 Token，None 表示使用 CDP_RELAY_TOKEN 設定

    Returns:
        FastAPI: 應用實例，連線管理器存放於 app.state.relay
    """
    relay = manager or RelayConnectionManager(agent_timeout=AGENT_TIMEOUT)
    expected_token = RELAY_TOKEN if token is None else token

    # ═══════════════════════════════════════════════════════════════════════════════
    # Lifespan 管理 - 關閉時中斷所有連線
    # ═══════════════════════════════════════════════════════════════════════════════
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 CDP Relay 已啟動")
        if expected_token:
            logger.info("🔐 WebSocket Token 認證: 已啟用")
        yield
        logger.info("🛑 正在關閉 CDP Relay 連線...")
        await relay.shutdown()

    app = FastAPI(
        title="CDP-RELAY",
        description="CDP relay between a CDP client and a browser extension",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.relay = relay

    # ═══════════════════════════════════════════════════════════════════════════════
    # HTTP 端點
    # ═══════════════════════════════════════════════════════════════════════════════

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "OK"

    @app.get("/status")
    async def status() -> dict:
        """連線狀態：CDP Client / Extension 是否已連線、Target 數量、等待中的請求數"""
        return asdict(relay.status())

    # ═══════════════════════════════════════════════════════════════════════════════
    # WebSocket 端點
    # ═══════════════════════════════════════════════════════════════════════════════

    @app.websocket(CDP_PATH)
    async def cdp_endpoint(websocket: WebSocket) -> None:
        channel = await _accept_channel(websocket, "cdp", expected_token)
        if channel is None or not await relay.connect_controller(channel):
            return

        try:
            while relay.controller is channel:
                raw = await channel.receive_text()
                relay.dispatch_controller_message(channel, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await relay.disconnect_controller(channel)

    @app.websocket(EXTENSION_PATH)
    async def extension_endpoint(websocket: WebSocket) -> None:
        channel = await _accept_channel(websocket, "extension", expected_token)
        if channel is None or not await relay.connect_agent(channel):
            return

        try:
            while relay.agent is channel:
                raw = await channel.receive_text()
                await relay.handle_agent_message(channel, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await relay.disconnect_agent(channel)

    return app


app = create_app()
