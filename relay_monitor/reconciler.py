"""
计数器对账

中继上报的 bytesProxied 是进程内累计值，中继重启后会从 0 重新累计。
这里为每个中继维护一个偏移量：检测到计数下降时，把上一轮的观测值
并入偏移量，保证「偏移量 + 原始值」单调不减。

状态分两份：
- 工作状态（_histories）：只由采集循环修改
- 发布状态（_published）：快照写入成功后整体替换，供视图只读查询
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Mapping, Optional

from .models import RelayStatus, Snapshot

logger = logging.getLogger(__name__)


@dataclass
class RelayHistory:
    """单个中继的对账状态"""
    base_offset: int = 0  # 已结束的计数周期累计字节数
    last_observed: int = 0  # 最近一次观测到的原始值


class CounterReconciler:
    """中继累计流量对账器"""

    def __init__(self):
        self._histories: Dict[str, RelayHistory] = {}
        self._published: Mapping[str, int] = {}

    def reconcile(self, relay: str, status: RelayStatus) -> int:
        """
        用一次新的观测更新对账状态

        Returns:
            叠加偏移后的累计字节数
        """
        raw = status.bytes_proxied
        history = self._histories.get(relay)
        if history is None:
            history = self._histories[relay] = RelayHistory()

        if raw < history.last_observed:
            # 计数下降，视为中继重启
            logger.info(
                f"Counter reset detected for {relay}: "
                f"{history.last_observed} -> {raw}, offset now {history.base_offset + history.last_observed}"
            )
            history.base_offset += history.last_observed

        history.last_observed = raw
        return history.base_offset + raw

    def reconcile_all(self, entries: Mapping[str, RelayStatus]) -> Dict[str, int]:
        """对一轮采集结果逐个对账"""
        return {relay: self.reconcile(relay, status) for relay, status in entries.items()}

    def publish(self):
        """把当前偏移量发布给读取方（在快照写入成功后调用）"""
        self._published = {relay: h.base_offset for relay, h in self._histories.items()}

    def base_offset(self, relay: str) -> int:
        """查询已发布的偏移量（纯查询，不做重置检测）"""
        return self._published.get(relay, 0)

    def adjusted(self, relay: str, raw: int) -> int:
        """已存储的原始值 + 已发布的偏移量"""
        return raw + self.base_offset(relay)

    def history(self, relay: str) -> Optional[RelayHistory]:
        """获取工作状态副本"""
        history = self._histories.get(relay)
        return replace(history) if history is not None else None

    def histories(self) -> Dict[str, RelayHistory]:
        return {relay: replace(h) for relay, h in self._histories.items()}

    def replay(self, snapshots: Iterable[Snapshot]) -> int:
        """
        启动时按时间顺序回放历史快照，重建对账状态

        Returns:
            回放的快照数量
        """
        count = 0
        for snapshot in snapshots:
            self.reconcile_all(snapshot.entries)
            count += 1
        self.publish()

        if count:
            logger.info(f"Replayed {count} snapshots, tracking {len(self._histories)} relays")
        return count
