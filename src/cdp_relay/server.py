"""
CDP Relay 伺服器啟動與關閉

在目前的 event loop 中以 uvicorn 啟動 Relay，回傳可取得端點位址與關閉伺服器的 handle。
"""

import asyncio
import contextlib
import logging
import socket
from dataclasses import dataclass, field

import uvicorn

from cdp_relay.app import create_app
from cdp_relay.config import AGENT_TIMEOUT, CDP_PATH, EXTENSION_PATH, RELAY_HOST, RELAY_PORT
from cdp_relay.relay.connection_manager import RelayConnectionManager

logger = logging.getLogger(__name__)


@dataclass
class RelayServer:
    """執行中的 Relay 伺服器"""

    host: str
    port: int
    manager: RelayConnectionManager
    _server: uvicorn.Server = field(repr=False)
    _task: asyncio.Task = field(repr=False)
    _socket: socket.socket = field(repr=False)

    @property
    def base_url(self) -> str:
        host = "localhost" if self.host in ("", "0.0.0.0", "::") else self.host
        return f"ws://{host}:{self.port}"

    @property
    def cdp_endpoint(self) -> str:
        return f"{self.base_url}{CDP_PATH}"

    @property
    def extension_endpoint(self) -> str:
        return f"{self.base_url}{EXTENSION_PATH}"

    async def close(self) -> None:
        """關閉兩端連線並釋放監聽埠"""
        await self.manager.shutdown()
        self._server.should_exit = True
        try:
            await self._task
        finally:
            self._socket.close()
        logger.info("🛑 CDP Relay 已停止")


async def start_relay_server(
    port: int | None = None,
    host: str | None = None,
    manager: RelayConnectionManager | None = None,
    token: str | None = None,
) -> RelayServer:
    """
    啟動 CDP Relay 伺服器

    Args:
        port: 監聽埠，0 表示由系統配發，預設為 CDP_RELAY_PORT
        host: 監聽位址，預設為 CDP_RELAY_HOST
        manager: 連線管理器，預設建立新的實例
        token: 連線 Token，None 表示使用 CDP_RELAY_TOKEN 設定

    Returns:
        RelayServer: 伺服器 handle

    Raises:
        OSError: 無法綁定監聽埠
    """
    host = RELAY_HOST if host is None else host
    port = RELAY_PORT if port is None else port
    manager = manager or RelayConnectionManager(agent_timeout=AGENT_TIMEOUT)

    sock = socket.create_server((host, port))
    bound_port = sock.getsockname()[1]

    config = uvicorn.Config(create_app(manager, token=token), log_config=None, lifespan="on")
    server = uvicorn.Server(config)
    task = asyncio.create_task(server.serve(sockets=[sock]))

    while not server.started:
        if task.done():
            sock.close()
            # 啟動失敗時把例外拋給呼叫端
            task.result()
            raise RuntimeError("CDP Relay server exited during startup")
        await asyncio.sleep(0.01)

    relay = RelayServer(host=host, port=bound_port, manager=manager, _server=server, _task=task, _socket=sock)
    logger.info("🚀 CDP Relay 已啟動")
    logger.info(f"🔌 Extension endpoint: {relay.extension_endpoint}")
    logger.info(f"🔌 CDP endpoint: {relay.cdp_endpoint}")
    return relay


@contextlib.asynccontextmanager
async def running_relay_server(port: int | None = None, host: str | None = None, **kwargs):
    """以 async with 管理 Relay 伺服器生命週期"""
    relay = await start_relay_server(port=port, host=host, **kwargs)
    try:
        yield relay
    finally:
        await relay.close()
