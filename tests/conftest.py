"""
测试公共夹具
"""

import sys
from pathlib import Path
from typing import Optional, Sequence

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relay_monitor.models import RelayStatus
from relay_monitor.reconciler import CounterReconciler
from relay_monitor.store import SnapshotStore


def make_status(
    bytes_proxied: int,
    sessions: int = 0,
    connections: int = 0,
    rates: Optional[Sequence[int]] = None,
    provided_by: str = ""
) -> RelayStatus:
    """按中继原始 JSON 字段构造状态"""
    return RelayStatus.model_validate({
        "bytesProxied": bytes_proxied,
        "numActiveSessions": sessions,
        "numConnections": connections,
        "kbps10s1m5m15m30m60m": list(rates) if rates is not None else [0] * 6,
        "options": {"provided-by": provided_by},
    })


def status_payload(
    bytes_proxied: int,
    sessions: int = 0,
    connections: int = 0,
    rates: Optional[Sequence[int]] = None,
    provided_by: str = ""
) -> dict:
    """中继 /status 返回的 JSON 文档"""
    return {
        "bytesProxied": bytes_proxied,
        "numActiveSessions": sessions,
        "numConnections": connections,
        "kbps10s1m5m15m30m60m": list(rates) if rates is not None else [0] * 6,
        "options": {"provided-by": provided_by, "global-rate": 0},
        "goMaxProcs": 4,
    }


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    """临时快照存储"""
    store = SnapshotStore(str(tmp_path / "relaystats.db"))
    store.init_schema()
    return store


@pytest.fixture
def reconciler() -> CounterReconciler:
    return CounterReconciler()
