"""
服务对象

持有存储、对账器、目录缓存、采集循环和视图，
由入口程序创建一次，通过 app.state 传给请求处理器。
"""

import asyncio
import logging
from typing import Optional

import httpx

from .aggregation import AggregationView
from .collector import RelayPoller
from .config import AppConfig
from .discovery import DiscoveryCache
from .metrics import create_exporter
from .models import AggregatedView
from .reconciler import CounterReconciler
from .relay_client import create_client
from .store import SnapshotStore

logger = logging.getLogger(__name__)


class RelayMonitorService:
    """中继监控服务"""

    def __init__(
        self,
        config: AppConfig,
        *,
        store: Optional[SnapshotStore] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config
        self.store = store or SnapshotStore(config.database.path, timeout=config.database.timeout)
        self.reconciler = CounterReconciler()
        self.view = AggregationView(self.store, self.reconciler)

        self._client = client
        self._owns_client = client is None
        self.poller: Optional[RelayPoller] = None
        self._task: Optional[asyncio.Task] = None

    def restore(self) -> int:
        """
        初始化存储并回放历史快照

        必须在处理任何请求之前调用。
        """
        self.store.init_schema()
        return self.reconciler.replay(self.store.all_in_order())

    def build_poller(self) -> RelayPoller:
        """创建采集循环（共享一个 HTTP 客户端）"""
        if self._client is None:
            self._client = create_client()

        discovery = DiscoveryCache(
            self._client,
            url=self.config.discovery.url,
            refresh_interval=self.config.discovery.refresh_interval,
            timeout=self.config.discovery.timeout,
        )
        self.poller = RelayPoller(
            self._client,
            discovery,
            self.reconciler,
            self.store,
            exporter=create_exporter(self._client, self.config.metrics),
            interval=self.config.collector.interval,
            timeout=self.config.collector.timeout,
        )
        return self.poller

    async def start(self):
        """回放历史并启动后台采集任务"""
        count = self.restore()
        logger.info(f"Restored reconciliation state from {count} snapshots")

        poller = self.build_poller()
        self._task = asyncio.create_task(poller.run(), name="relay-poller")

    async def stop(self):
        """停止采集并释放 HTTP 客户端"""
        if self.poller is not None:
            await self.poller.stop()
        if self._task is not None:
            try:
                # 等待当前一轮结束（目录请求 + 中继请求都有各自的超时）
                grace = self.config.discovery.timeout + self.config.collector.timeout + 5
                await asyncio.wait_for(self._task, timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("Collector did not stop in time, cancelled")
            self._task = None

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Relay monitor stopped")

    def render(self) -> AggregatedView:
        return self.view.render()
