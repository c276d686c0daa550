"""
数据模型定义

包括：
- 中继状态（与中继 /status 返回的 JSON 字段一一对应）
- 快照（一次采集周期的完整结果）
- 聚合视图响应模型（用于 API 和页面渲染）
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt


# 六个速率窗口，顺序与 kbps10s1m5m15m30m60m 数组一致
RATE_WINDOWS = ("10s", "1m", "5m", "15m", "30m", "60m")


# =============================================================================
# 中继状态
# =============================================================================

class RelayOptions(BaseModel):
    """中继自报的配置项（只关心 provided-by）"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    provided_by: str = Field(default="", alias="provided-by")


class RelayStatus(BaseModel):
    """
    单个中继在拉取时刻的状态

    bytes_proxied 是中继进程内的累计值，进程重启后会归零。
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    bytes_proxied: NonNegativeInt = Field(..., alias="bytesProxied")
    num_active_sessions: NonNegativeInt = Field(default=0, alias="numActiveSessions")
    num_connections: NonNegativeInt = Field(default=0, alias="numConnections")
    rates: List[NonNegativeInt] = Field(
        ...,
        alias="kbps10s1m5m15m30m60m",
        min_length=len(RATE_WINDOWS),
        max_length=len(RATE_WINDOWS),
    )
    options: RelayOptions = Field(default_factory=RelayOptions)

    @property
    def provided_by(self) -> str:
        return self.options.provided_by

    def to_json(self) -> str:
        """序列化为中继原始字段名的 JSON（用于落库）"""
        return self.model_dump_json(by_alias=True)


# =============================================================================
# 快照
# =============================================================================

class Snapshot(BaseModel):
    """
    一次采集周期的不可变快照

    entries: {中继 URL: 状态}
    errors: {中继 URL: 错误信息}，仅当存储中的记录无法解析时出现
    """
    model_config = ConfigDict(frozen=True)

    timestamp: str
    entries: Dict[str, RelayStatus] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)


class SnapshotListResponse(BaseModel):
    """快照键分页响应"""
    total: int
    limit: int
    offset: int
    keys: List[str] = Field(default_factory=list)


# =============================================================================
# 聚合视图
# =============================================================================

class RelayRow(BaseModel):
    """视图中的一行（一个中继）"""
    url: str
    status: Optional[RelayStatus] = None
    bytes_proxied: int = 0  # 已叠加重置偏移的累计值
    error: Optional[str] = None


class RelayTotals(BaseModel):
    """全体中继的合计行"""
    bytes_proxied: int = 0
    num_active_sessions: int = 0
    num_connections: int = 0
    rates: List[int] = Field(default_factory=lambda: [0] * len(RATE_WINDOWS))


class AggregatedView(BaseModel):
    """GET /api/status 响应"""
    timestamp: Optional[str] = None
    relays: List[RelayRow] = Field(default_factory=list)
    totals: RelayTotals = Field(default_factory=RelayTotals)


class HealthResponse(BaseModel):
    """GET /api/health 响应"""
    status: str = "ok"
    snapshots: int = 0
    last_snapshot: Optional[str] = None
