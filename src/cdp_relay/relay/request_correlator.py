"""
Extension 請求對應器

為轉發到 Extension 的每個指令配發遞增 id，並以 id 對應之後收到的回應。
"""

import asyncio
import logging
from typing import Any

from cdp_relay.relay.channel import Channel
from cdp_relay.schemas import AgentRequestError, AgentTimeoutError, AgentUnavailableError
from cdp_relay.utils import encode_frame

logger = logging.getLogger(__name__)

AGENT_NOT_CONNECTED = "agent not connected"


class RequestCorrelator:
    """
    管理等待 Extension 回應的請求表（id -> Future）

    回應一律透過 id 明確查表完成，不依賴「下一則訊息」。
    id 在整個程序中單調遞增，從 1 開始。

    Args:
        timeout: 等待回應的逾時秒數，None 或 0 表示無限等待
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._channel: Channel | None = None
        self._pending: dict[int, asyncio.Future] = {}
        self._owners: dict[int, asyncio.Task] = {}
        self._last_id = 0
        self._timeout = timeout or None

    @property
    def is_connected(self) -> bool:
        return self._channel is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_ids(self) -> list[int]:
        return list(self._pending)

    def owner(self, request_id: Any) -> asyncio.Task | None:
        """取得發出該請求的 task（請求已結束或非 task 發出時為 None）"""
        return self._owners.get(request_id) if isinstance(request_id, int) else None

    def attach(self, channel: Channel) -> None:
        """綁定 Extension 通道"""
        self._channel = channel

    def detach(self) -> None:
        """解除 Extension 通道綁定（不影響等待中的請求，請另外呼叫 fail_all）"""
        self._channel = None

    def _next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    async def send(self, method: str, params: dict[str, Any] | None = None) -> asyncio.Future:
        """
        發送指令到 Extension

        Args:
            method: 指令名稱
            params: 指令參數

        Returns:
            asyncio.Future: 收到對應回應時完成的 Future

        Raises:
            AgentUnavailableError: Extension 未連線（不會送出任何訊息）
        """
        channel = self._channel
        if channel is None:
            raise AgentUnavailableError(AGENT_NOT_CONNECTED)

        request_id = self._next_id()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        owner = asyncio.current_task()
        if owner is not None:
            self._owners[request_id] = owner

        message: dict[str, Any] = {"id": request_id, "method": method}
        if params is not None:
            message["params"] = params

        try:
            await channel.send_text(encode_frame(message))
        except Exception:
            self._pending.pop(request_id, None)
            self._owners.pop(request_id, None)
            raise

        logger.debug(f"→ Extension: {method} (id={request_id})")
        return future

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """
        發送指令並等待 Extension 回應

        Returns:
            Extension 回傳的 result

        Raises:
            AgentUnavailableError: Extension 未連線
            AgentRequestError: Extension 回傳錯誤或連線中斷
            AgentTimeoutError: 設定了逾時且等待逾時
        """
        future = await self.send(method, params)
        if self._timeout is None:
            return await future

        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._timeout)
        except asyncio.TimeoutError:
            self._drop_future(future)
            logger.error(f"Extension 回應逾時: method={method}, timeout={self._timeout}s")
            raise AgentTimeoutError(f"Extension did not respond to {method} within {self._timeout}s") from None

    def _drop_future(self, future: asyncio.Future) -> None:
        for request_id, pending in list(self._pending.items()):
            if pending is future:
                del self._pending[request_id]
                self._owners.pop(request_id, None)
        if not future.done():
            future.cancel()

    def resolve(self, request_id: Any, result: Any) -> bool:
        """以成功結果完成等待中的請求，找不到 id 時記錄並忽略"""
        future = self._pop(request_id)
        if future is None:
            return False
        future.set_result(result)
        return True

    def reject(self, request_id: Any, message: str) -> bool:
        """以錯誤完成等待中的請求，找不到 id 時記錄並忽略"""
        future = self._pop(request_id)
        if future is None:
            return False
        future.set_exception(AgentRequestError(message))
        return True

    def _pop(self, request_id: Any) -> asyncio.Future | None:
        if isinstance(request_id, int):
            future = self._pending.pop(request_id, None)
            self._owners.pop(request_id, None)
        else:
            future = None
        if future is None:
            logger.warning(f"收到未預期的回應 id: {request_id}")
            return None
        if future.done():
            # 等待方已逾時或被取消
            logger.debug(f"請求 id={request_id} 已結束，忽略回應")
            return None
        return future

    def fail_all(self, message: str) -> int:
        """以同一錯誤訊息結束所有等待中的請求，回傳被結束的數量"""
        pending = self._pending
        self._pending = {}
        self._owners = {}
        failed = 0
        for future in pending.values():
            if not future.done():
                future.set_exception(AgentRequestError(message))
                failed += 1
        if failed:
            logger.warning(f"⚠️ 已中止 {failed} 個等待 Extension 回應的請求: {message}")
        return failed
