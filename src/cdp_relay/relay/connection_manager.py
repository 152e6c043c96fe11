"""
Relay 連線管理器

同一時間只允許一個 CDP Client（controller）與一個 Extension（agent）連線。
負責解碼雙方訊息、交給 CommandRouter / RequestCorrelator 處理，
並將回應與事件送回 CDP Client。
"""

import asyncio
import logging
from typing import Any

from cdp_relay.relay.channel import NORMAL_CLOSURE, Channel, ChannelClosedError
from cdp_relay.relay.command_router import CommandRouter
from cdp_relay.relay.request_correlator import AGENT_NOT_CONNECTED, RequestCorrelator
from cdp_relay.relay.target_registry import TargetRegistry
from cdp_relay.schemas import (
    FORWARD_EVENT_METHOD,
    AgentEvent,
    CDPCommand,
    CDPEvent,
    CDPResponse,
    RelayError,
    RelayStatus,
)
from cdp_relay.utils import decode_frame, encode_frame, truncate_string

logger = logging.getLogger(__name__)

# 關閉原因
CONTROLLER_REJECTED = "Another CDP client already connected"
AGENT_REJECTED = "Another extension connection already established"
AGENT_DISCONNECTED = "Extension disconnected"
AGENT_CONNECTION_CLOSED = "Extension connection closed"
INVALID_JSON = "Invalid JSON"
SERVER_STOPPED = "Server stopped"


def _error_message(error: Any) -> str:
    """Extension 的 error 欄位可能是字串或 {message: ...}"""
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class RelayConnectionManager:
    """
    CDP Relay 連線管理器

    兩個連線槽（CDP Client / Extension）各自為 Empty → Occupied → Empty。
    槽已被佔用時，新連線會以 1000 正常關閉代碼拒絕，既有連線不受影響。
    Extension 斷線時會中止所有等待中的請求、清空 Target 註冊表，並關閉 CDP Client。
    """

    def __init__(
        self,
        registry: TargetRegistry | None = None,
        correlator: RequestCorrelator | None = None,
        router: CommandRouter | None = None,
        agent_timeout: float | None = None,
    ) -> None:
        self.registry = registry or TargetRegistry()
        self.correlator = correlator or RequestCorrelator(timeout=agent_timeout)
        self.router = router or CommandRouter(self.registry, self.correlator)

        self._controller: Channel | None = None
        self._agent: Channel | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def controller(self) -> Channel | None:
        return self._controller

    @property
    def agent(self) -> Channel | None:
        return self._agent

    @property
    def controller_connected(self) -> bool:
        return self._controller is not None

    @property
    def agent_connected(self) -> bool:
        return self._agent is not None

    def status(self) -> RelayStatus:
        """取得連線狀態快照"""
        return RelayStatus(
            controller_connected=self.controller_connected,
            extension_connected=self.agent_connected,
            targets=len(self.registry),
            pending_requests=self.correlator.pending_count,
        )

    # ═══════════════════════════════════════════════════════════════════════════════
    # 連線槽
    # ═══════════════════════════════════════════════════════════════════════════════

    async def connect_controller(self, channel: Channel) -> bool:
        """佔用 CDP Client 連線槽，已被佔用時關閉新連線並回傳 False"""
        if self._controller is not None:
            logger.warning("拒絕第二個 CDP Client 連線")
            await channel.close(NORMAL_CLOSURE, CONTROLLER_REJECTED)
            return False

        self._controller = channel
        logger.info("✅ CDP Client 已連線")
        return True

    async def connect_agent(self, channel: Channel) -> bool:
        """佔用 Extension 連線槽，已被佔用時關閉新連線並回傳 False"""
        if self._agent is not None:
            logger.warning("拒絕第二個 Extension 連線")
            await channel.close(NORMAL_CLOSURE, AGENT_REJECTED)
            return False

        self._agent = channel
        self.correlator.attach(channel)
        logger.info("✅ Extension 已連線")
        return True

    async def disconnect_controller(self, channel: Channel) -> None:
        """釋放 CDP Client 連線槽（只有目前佔用者斷線才有作用）"""
        if channel is not self._controller:
            return
        self._controller = None
        logger.info("🔴 CDP Client 已斷線")

    async def disconnect_agent(self, channel: Channel) -> None:
        """
        釋放 Extension 連線槽（只有目前佔用者斷線才有作用）

        依序中止所有等待中的請求、清空 Target 註冊表、釋放連線槽，
        最後強制關閉 CDP Client。
        """
        if channel is not self._agent:
            return
        logger.info("🔴 Extension 已斷線")

        self.correlator.fail_all(AGENT_CONNECTION_CLOSED)
        self.correlator.detach()
        self.registry.clear()
        self._agent = None

        controller = self._controller
        if controller is not None:
            self._controller = None
            logger.info("🔴 Extension 已離線，關閉 CDP Client 連線")
            await controller.close(NORMAL_CLOSURE, AGENT_DISCONNECTED)

    async def shutdown(self) -> None:
        """關閉所有連線並結束處理中的指令"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        controller = self._controller
        if controller is not None:
            self._controller = None
            await controller.close(NORMAL_CLOSURE, SERVER_STOPPED)

        agent = self._agent
        if agent is not None:
            await agent.close(NORMAL_CLOSURE, SERVER_STOPPED)
            await self.disconnect_agent(agent)

    # ═══════════════════════════════════════════════════════════════════════════════
    # CDP Client 訊息
    # ═══════════════════════════════════════════════════════════════════════════════

    def dispatch_controller_message(self, channel: Channel, raw: str) -> asyncio.Task:
        """在獨立 task 中處理 CDP Client 指令，轉發中的指令不會阻塞後續訊息"""
        task = asyncio.create_task(self.handle_controller_message(channel, raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle_controller_message(self, channel: Channel, raw: str) -> None:
        """處理一則 CDP Client 訊息，回應只會送回發出指令的連線"""
        if channel is not self._controller:
            logger.debug("非目前 CDP Client 的訊息，已忽略")
            return

        data = decode_frame(raw)
        if data is None:
            logger.warning(f"無法解析 CDP Client 訊息，已忽略: {truncate_string(str(raw))}")
            return

        command = CDPCommand.from_dict(data)
        logger.debug(f"← CDP Client: {command.method} (id={command.id})")

        if self._agent is None:
            await self._send_to_controller(
                channel,
                CDPResponse(id=command.id, session_id=command.session_id, error=AGENT_NOT_CONNECTED),
            )
            return

        try:
            result = await self.router.route(command.method, command.params, command.session_id)
        except RelayError as e:
            logger.error(f"處理 CDP 指令失敗: {command.method} (id={command.id}): {e}")
            await self._send_to_controller(
                channel, CDPResponse(id=command.id, session_id=command.session_id, error=e.message)
            )
            return
        except Exception as e:
            logger.exception(f"處理 CDP 指令時發生錯誤: {command.method} (id={command.id}): {e}")
            await self._send_to_controller(
                channel,
                CDPResponse(id=command.id, session_id=command.session_id, error=str(e) or type(e).__name__),
            )
            return

        if self.router.replays_attached_targets(command.method, command.session_id):
            for event in self.router.attached_target_events():
                await self._send_to_controller(channel, event)

        await self._send_to_controller(channel, CDPResponse(id=command.id, session_id=command.session_id, result=result))

    async def _send_to_controller(self, channel: Channel | None, message: CDPResponse | CDPEvent) -> None:
        if channel is None or channel is not self._controller:
            logger.debug(f"CDP Client 已離線，丟棄訊息: {truncate_string(str(message))}")
            return

        if isinstance(message, CDPEvent):
            suffix = " (server-generated)" if message.source == "server" else ""
            logger.debug(f"→ CDP Client: {message.method}{suffix}")

        try:
            await channel.send_text(encode_frame(message.to_wire()))
        except ChannelClosedError as e:
            logger.debug(f"送出訊息到 CDP Client 失敗: {e}")

    # ═══════════════════════════════════════════════════════════════════════════════
    # Extension 訊息
    # ═══════════════════════════════════════════════════════════════════════════════

    async def handle_agent_message(self, channel: Channel, raw: str) -> None:
        """處理一則 Extension 訊息：帶 id 的是回應，其餘是 forwardCDPEvent 事件信封"""
        if channel is not self._agent:
            logger.debug("非目前 Extension 的訊息，已忽略")
            return

        data = decode_frame(raw)
        if data is None:
            logger.warning(f"Extension 傳來無效 JSON，關閉連線: {truncate_string(str(raw))}")
            await channel.close(NORMAL_CLOSURE, INVALID_JSON)
            await self.disconnect_agent(channel)
            return

        if "id" in data:
            await self._handle_agent_response(data)
            return

        if data.get("method") != FORWARD_EVENT_METHOD:
            logger.debug(f"忽略 Extension 訊息: method={data.get('method')}")
            return

        envelope = data.get("params")
        if not isinstance(envelope, dict):
            logger.warning(f"forwardCDPEvent 缺少 params，已忽略: {truncate_string(str(raw))}")
            return

        method = envelope.get("method")
        params = envelope.get("params")
        session_id = envelope.get("sessionId")
        logger.debug(f"← Extension: {method}")

        if method == "Target.attachedToTarget":
            self._register_target(params)
            await self._send_event(AgentEvent(method=method, params=params))
            return
        if method == "Target.detachedFromTarget":
            detached_session = params.get("sessionId") if isinstance(params, dict) else None
            if detached_session:
                self.registry.remove(detached_session)
            await self._send_event(AgentEvent(method=method, params=params))
            return

        await self._send_event(AgentEvent(method=method, params=params, session_id=session_id))

    async def _handle_agent_response(self, data: dict[str, Any]) -> None:
        request_id = data["id"]
        owner = self.correlator.owner(request_id)
        error = data.get("error")
        if error:
            settled = self.correlator.reject(request_id, _error_message(error))
        else:
            settled = self.correlator.resolve(request_id, data.get("result"))

        # 等發出指令的 task 把回應寫給 CDP Client，後續 Extension 訊息才不會搶先送出
        if settled and owner in self._tasks and owner is not asyncio.current_task():
            await asyncio.wait({owner})

    def _register_target(self, params: Any) -> None:
        if not isinstance(params, dict):
            logger.warning("Target.attachedToTarget 缺少 params，未註冊")
            return
        session_id = params.get("sessionId")
        target_info = params.get("targetInfo")
        target_id = target_info.get("targetId") if isinstance(target_info, dict) else None
        if not session_id or not target_id:
            logger.warning(f"Target.attachedToTarget 缺少 sessionId 或 targetId，未註冊: {truncate_string(str(params))}")
            return
        self.registry.add(session_id, target_id, target_info)

    async def _send_event(self, event: CDPEvent) -> None:
        await self._send_to_controller(self._controller, event)
