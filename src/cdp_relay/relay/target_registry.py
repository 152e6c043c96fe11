"""
Target 註冊表

記錄 Extension 回報的已連接 Target，以 sessionId 為索引。
"""

import logging
from typing import Any

from cdp_relay.schemas import ConnectedTarget

logger = logging.getLogger(__name__)


class TargetRegistry:
    """
    已連接 Target 的記憶體註冊表

    內容完全由 Extension 的 attachedToTarget / detachedFromTarget 事件維護，
    Extension 斷線時整批清空。
    """

    def __init__(self) -> None:
        self._targets: dict[str, ConnectedTarget] = {}

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._targets

    def add(self, session_id: str, target_id: str, target_info: dict[str, Any]) -> ConnectedTarget:
        """新增或覆寫 Target"""
        target = ConnectedTarget(session_id=session_id, target_id=target_id, target_info=target_info)
        self._targets[session_id] = target
        logger.debug(f"🎯 Target 已註冊: sessionId={session_id}, targetId={target_id}")
        return target

    def remove(self, session_id: str) -> ConnectedTarget | None:
        """移除 Target，不存在時不做任何事"""
        target = self._targets.pop(session_id, None)
        if target is not None:
            logger.debug(f"🎯 Target 已移除: sessionId={session_id}")
        return target

    def get_by_session(self, session_id: str) -> ConnectedTarget | None:
        return self._targets.get(session_id)

    def get_by_target_id(self, target_id: str) -> ConnectedTarget | None:
        """依 targetId 線性搜尋，回傳第一個符合的 Target"""
        for target in self._targets.values():
            if target.target_id == target_id:
                return target
        return None

    def all(self) -> list[ConnectedTarget]:
        """取得目前所有 Target 的快照"""
        return list(self._targets.values())

    def clear(self) -> None:
        if self._targets:
            logger.info(f"🧹 清空 Target 註冊表: 移除 {len(self._targets)} 個 Target")
        self._targets.clear()
