"""
CDP 指令路由

部分 Browser.* / Target.* 指令由 Relay 依 Target 註冊表直接回答，
其餘指令包進 forwardCDPCommand 信封轉發給 Extension。
"""

import logging
from collections.abc import Callable
from typing import Any

from cdp_relay.relay.request_correlator import RequestCorrelator
from cdp_relay.relay.target_registry import TargetRegistry
from cdp_relay.schemas import FORWARD_COMMAND_METHOD, ServerGeneratedEvent

logger = logging.getLogger(__name__)

# Browser.getVersion 固定回應
BROWSER_VERSION = {
    "protocolVersion": "1.3",
    "product": "Chrome/Extension-Bridge",
    "revision": "1.0.0",
    "userAgent": "CDP-Bridge-Server/1.0.0",
    "jsVersion": "V8",
}


class _Forward:
    """路由結果標記：交給 Extension 處理"""

    def __repr__(self) -> str:
        return "FORWARD"


FORWARD = _Forward()

LocalHandler = Callable[[dict[str, Any], str | None], Any]


class CommandRouter:
    """
    CDP 指令路由器

    路由表依宣告順序比對，第一個符合的 handler 負責處理；
    handler 回傳 FORWARD 表示仍需轉發給 Extension。
    不在路由表中的 method 一律轉發。
    """

    def __init__(self, registry: TargetRegistry, correlator: RequestCorrelator) -> None:
        self._registry = registry
        self._correlator = correlator
        self._handlers: dict[str, LocalHandler] = {
            "Browser.getVersion": self._browser_get_version,
            "Browser.setDownloadBehavior": self._empty_result,
            "Target.setAutoAttach": self._target_set_auto_attach,
            "Target.getTargetInfo": self._target_get_target_info,
            "Target.getTargets": self._target_get_targets,
            # 明確列出，避免被誤當成本地指令
            "Target.closeTarget": self._forward,
        }

    async def route(self, method: str, params: dict[str, Any] | None = None, session_id: str | None = None) -> Any:
        """
        處理一個 CDP 指令

        Args:
            method: CDP method
            params: 指令參數
            session_id: 目標 session（可選）

        Returns:
            指令結果

        Raises:
            AgentUnavailableError: 需要轉發但 Extension 未連線
            AgentRequestError: Extension 回傳錯誤或連線中斷
        """
        handler = self._handlers.get(method)
        if handler is not None:
            result = handler(params or {}, session_id)
            if result is not FORWARD:
                logger.debug(f"本地處理: {method}")
                return result

        return await self.forward(method, params, session_id)

    async def forward(self, method: str, params: dict[str, Any] | None, session_id: str | None) -> Any:
        """將指令包進轉發信封送往 Extension 並等待結果"""
        envelope: dict[str, Any] = {"method": method}
        if session_id is not None:
            envelope["sessionId"] = session_id
        if params is not None:
            envelope["params"] = params
        return await self._correlator.request(FORWARD_COMMAND_METHOD, envelope)

    @staticmethod
    def replays_attached_targets(method: str, session_id: str | None) -> bool:
        """未指定 session 的 Target.setAutoAttach 需在回應前補發 attachedToTarget 事件"""
        return method == "Target.setAutoAttach" and not session_id

    def attached_target_events(self) -> list[ServerGeneratedEvent]:
        """為目前註冊表中的每個 Target 產生一個 Target.attachedToTarget 事件"""
        return [
            ServerGeneratedEvent(
                method="Target.attachedToTarget",
                params={
                    "sessionId": target.session_id,
                    "targetInfo": {**target.target_info, "attached": True},
                    "waitingForDebugger": False,
                },
            )
            for target in self._registry.all()
        ]

    # ═══════════════════════════════════════════════════════════════════════════════
    # 本地 handlers
    # ═══════════════════════════════════════════════════════════════════════════════

    def _browser_get_version(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return dict(BROWSER_VERSION)

    def _empty_result(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {}

    def _forward(self, params: dict[str, Any], session_id: str | None) -> _Forward:
        return FORWARD

    def _target_set_auto_attach(self, params: dict[str, Any], session_id: str | None) -> Any:
        # 指定 session 的 auto-attach 交給 Extension
        if session_id:
            return FORWARD
        return {}

    def _target_get_target_info(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        """依 targetId → sessionId → 第一個 Target 的順序查找"""
        target = None
        target_id = params.get("targetId")
        if target_id:
            target = self._registry.get_by_target_id(target_id)
        if target is None and session_id:
            target = self._registry.get_by_session(session_id)
        if target is None:
            targets = self._registry.all()
            target = targets[0] if targets else None

        if target is None:
            return {}
        return {"targetInfo": target.target_info}

    def _target_get_targets(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {"targetInfos": [{**target.target_info, "attached": True} for target in self._registry.all()]}
