"""
聚合视图

读取最新快照，为每个中继叠加已发布的重置偏移量，并计算合计行。
读取过程不修改任何对账状态。
"""

import math

from .errors import SnapshotNotFound
from .models import RATE_WINDOWS, AggregatedView, RelayRow, RelayTotals
from .reconciler import CounterReconciler
from .store import SnapshotStore

_IEC_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def format_bytes(value: int) -> str:
    """
    IEC 单位格式化（1536 -> "1.5 KiB"）

    小于 10 的数值保留一位小数，其余取整。
    先按显示精度舍入再选单位（1048575 -> "1.0 MiB"）。
    """
    if value < 1024:
        return f"{value} B"
    amount = float(value)
    shown = amount
    unit = _IEC_UNITS[0]
    for unit in _IEC_UNITS[1:]:
        amount /= 1024
        shown = math.floor(amount * 10 + 0.5) / 10
        if shown >= 10:
            shown = math.floor(amount + 0.5)
        if shown < 1024:
            break
    if shown < 10:
        return f"{shown:.1f} {unit}"
    return f"{shown:.0f} {unit}"


class AggregationView:
    """每次请求时计算的聚合视图"""

    def __init__(self, store: SnapshotStore, reconciler: CounterReconciler):
        self._store = store
        self._reconciler = reconciler

    def render(self) -> AggregatedView:
        """
        生成聚合视图

        没有快照时返回空视图（合计全为 0），不视为错误。
        """
        try:
            snapshot = self._store.latest()
        except SnapshotNotFound:
            return AggregatedView()

        rows = []
        totals = RelayTotals()
        rates = [0] * len(RATE_WINDOWS)

        for url, status in snapshot.entries.items():
            adjusted = self._reconciler.adjusted(url, status.bytes_proxied)
            rows.append(RelayRow(url=url, status=status, bytes_proxied=adjusted))

            totals.bytes_proxied += adjusted
            totals.num_active_sessions += status.num_active_sessions
            totals.num_connections += status.num_connections
            for index, rate in enumerate(status.rates):
                rates[index] += rate

        for url, message in snapshot.errors.items():
            rows.append(RelayRow(url=url, error=message))

        totals.rates = rates
        rows.sort(key=lambda row: row.url)

        return AggregatedView(timestamp=snapshot.timestamp, relays=rows, totals=totals)
