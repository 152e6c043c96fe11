"""
資料模型定義

包含 CDP 指令、回應、事件（區分伺服器產生與 Extension 轉發）、
已連接 Target 以及 Relay 錯誤類型等核心資料結構
"""
from dataclasses import dataclass, field
from typing import Any

# 與 Extension 之間的轉發信封 method
FORWARD_COMMAND_METHOD = "forwardCDPCommand"
FORWARD_EVENT_METHOD = "forwardCDPEvent"

# 伺服器產生事件的額外標記欄位
SERVER_GENERATED_FLAG = "__serverGenerated"


@dataclass
class ConnectedTarget:
    """Extension 回報的已連接 Target"""
    session_id: str
    target_id: str
    target_info: dict[str, Any] = field(default_factory=dict)


@dataclass
class CDPCommand:
    """CDP Client 發出的指令"""
    id: Any
    method: str
    params: dict[str, Any] | None = None
    session_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CDPCommand":
        return cls(
            id=data.get("id"),
            method=data.get("method") or "",
            params=data.get("params"),
            session_id=data.get("sessionId"),
        )


@dataclass
class CDPResponse:
    """回傳給 CDP Client 的回應，error 有值時視為失敗回應"""
    id: Any
    session_id: str | None = None
    result: Any = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        message: dict[str, Any] = {"id": self.id}
        if self.session_id is not None:
            message["sessionId"] = self.session_id
        if self.error is not None:
            message["error"] = {"message": self.error}
        else:
            message["result"] = self.result if self.result is not None else {}
        return message


@dataclass
class CDPEvent:
    """送往 CDP Client 的事件（基底類別，請使用子類別標示來源）"""
    method: str
    params: dict[str, Any] | None = None
    session_id: str | None = None

    source = "unknown"

    def to_wire(self) -> dict[str, Any]:
        message: dict[str, Any] = {"method": self.method, "params": self.params if self.params is not None else {}}
        if self.session_id is not None:
            message["sessionId"] = self.session_id
        return message


@dataclass
class AgentEvent(CDPEvent):
    """由 Extension 轉發的原始事件"""

    source = "extension"


@dataclass
class ServerGeneratedEvent(CDPEvent):
    """由 Relay 自行產生的事件，線路上帶有 __serverGenerated 標記"""

    source = "server"

    def to_wire(self) -> dict[str, Any]:
        message = super().to_wire()
        message[SERVER_GENERATED_FLAG] = True
        return message


@dataclass
class RelayStatus:
    """Relay 伺服器狀態快照"""
    controller_connected: bool
    extension_connected: bool
    targets: int
    pending_requests: int


class RelayError(Exception):
    """Relay 專用的錯誤類型"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AgentUnavailableError(RelayError):
    """Extension 未連線，無法轉發指令"""


class AgentRequestError(RelayError):
    """Extension 回傳錯誤，或連線在等待回應時中斷"""


class AgentTimeoutError(RelayError):
    """等待 Extension 回應逾時"""
