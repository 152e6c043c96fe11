"""Pytest configuration and shared fixtures."""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from cdp_relay.relay.channel import NORMAL_CLOSURE, ChannelClosedError
from cdp_relay.relay.command_router import CommandRouter
from cdp_relay.relay.connection_manager import RelayConnectionManager
from cdp_relay.relay.request_correlator import RequestCorrelator
from cdp_relay.relay.target_registry import TargetRegistry


class FakeChannel:
    """In-memory channel that records every frame sent and the close call."""

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self.sent: list[dict[str, Any]] = []
        self.close_calls: list[tuple[int, str]] = []

    @property
    def closed(self) -> bool:
        return bool(self.close_calls)

    @property
    def close_code(self) -> int | None:
        return self.close_calls[0][0] if self.close_calls else None

    @property
    def close_reason(self) -> str | None:
        return self.close_calls[0][1] if self.close_calls else None

    async def send_text(self, data: str) -> None:
        if self.closed:
            raise ChannelClosedError(f"{self.name} channel is closed")
        self.sent.append(json.loads(data))

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        self.close_calls.append((code, reason))

    def events(self) -> list[dict[str, Any]]:
        return [m for m in self.sent if "method" in m and "id" not in m]

    def responses(self) -> list[dict[str, Any]]:
        return [m for m in self.sent if "id" in m]


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the event loop until predicate() is true."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def attach_event(session_id: str, target_id: str, **target_info: Any) -> str:
    """Agent frame reporting Target.attachedToTarget."""
    info = {"targetId": target_id, "type": "page", "title": "", "url": "about:blank", "attached": False}
    info.update(target_info)
    return json.dumps(
        {
            "method": "forwardCDPEvent",
            "params": {
                "method": "Target.attachedToTarget",
                "params": {"sessionId": session_id, "targetInfo": info, "waitingForDebugger": False},
            },
        }
    )


def detach_event(session_id: str, target_id: str | None = None) -> str:
    """Agent frame reporting Target.detachedFromTarget."""
    params: dict[str, Any] = {"sessionId": session_id}
    if target_id is not None:
        params["targetId"] = target_id
    return json.dumps(
        {"method": "forwardCDPEvent", "params": {"method": "Target.detachedFromTarget", "params": params}}
    )


@pytest.fixture
def registry() -> TargetRegistry:
    return TargetRegistry()


@pytest.fixture
def correlator() -> RequestCorrelator:
    return RequestCorrelator()


@pytest.fixture
def router(registry: TargetRegistry, correlator: RequestCorrelator) -> CommandRouter:
    return CommandRouter(registry, correlator)


@pytest.fixture
def manager(registry: TargetRegistry, correlator: RequestCorrelator, router: CommandRouter) -> RelayConnectionManager:
    return RelayConnectionManager(registry=registry, correlator=correlator, router=router)


@pytest.fixture
def controller() -> FakeChannel:
    return FakeChannel("cdp")


@pytest.fixture
def agent() -> FakeChannel:
    return FakeChannel("extension")
