"""
CDP Relay 核心模組

連線槽管理、Target 註冊表、指令路由與 Extension 請求對應。
"""

from cdp_relay.relay.channel import Channel, ChannelClosedError, WebSocketChannel
from cdp_relay.relay.command_router import FORWARD, CommandRouter
from cdp_relay.relay.connection_manager import RelayConnectionManager
from cdp_relay.relay.request_correlator import RequestCorrelator
from cdp_relay.relay.target_registry import TargetRegistry

__all__ = [
    "Channel",
    "ChannelClosedError",
    "CommandRouter",
    "FORWARD",
    "RelayConnectionManager",
    "RequestCorrelator",
    "TargetRegistry",
    "WebSocketChannel",
]
