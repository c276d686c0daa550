"""
InfluxDB 导出（可选）

每轮采集后把六个速率窗口写入 InfluxDB 1.x 的 /write 接口：
measurement 为 bandwidth-<窗口>，tag relay=<中继 URL>，字段 value。
导出失败只记录日志，不影响采集和视图。
"""

import logging
from datetime import datetime
from typing import List, Mapping, Optional

import httpx

from .models import RATE_WINDOWS, RelayStatus

logger = logging.getLogger(__name__)


def _escape_key(value: str) -> str:
    """转义 measurement / tag 中的特殊字符"""
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def build_lines(entries: Mapping[str, RelayStatus], moment: datetime) -> List[str]:
    """
    生成 line protocol 数据行

    Args:
        entries: {中继 URL: 状态}
        moment: 本轮采集时间（秒精度）

    Returns:
        每个中继每个窗口一行
    """
    ts = int(moment.timestamp())
    lines = []
    for index, window in enumerate(RATE_WINDOWS):
        measurement = _escape_key(f"bandwidth-{window}")
        for relay in sorted(entries):
            value = entries[relay].rates[index]
            lines.append(f"{measurement},relay={_escape_key(relay)} value={value}i {ts}")
    return lines


class InfluxExporter:
    """InfluxDB 写入客户端"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        database: str,
        username: str = "",
        password: str = "",
        timeout: float = 5.0
    ):
        self._client = client
        self._write_url = url.rstrip("/") + "/write"
        self._params = {"db": database, "precision": "s"}
        if username:
            self._params["u"] = username
            self._params["p"] = password
        self._timeout = timeout

    async def export(self, entries: Mapping[str, RelayStatus], moment: datetime) -> bool:
        """
        写入一轮数据

        Returns:
            是否写入成功（失败不抛异常）
        """
        lines = build_lines(entries, moment)
        if not lines:
            return True

        try:
            response = await self._client.post(
                self._write_url,
                params=self._params,
                content="\n".join(lines).encode("utf-8"),
                timeout=self._timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Metrics export failed ({len(lines)} points): {e}")
            return False

        logger.debug(f"Exported {len(lines)} points to InfluxDB")
        return True


def create_exporter(client: httpx.AsyncClient, config) -> Optional[InfluxExporter]:
    """根据 MetricsConfig 创建导出器，未启用时返回 None"""
    if not config.enabled:
        return None
    return InfluxExporter(
        client,
        url=config.url,
        database=config.database,
        username=config.username,
        password=config.password,
        timeout=config.timeout
    )
