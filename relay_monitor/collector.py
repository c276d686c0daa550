"""
采集循环

每隔 interval 秒：
1. 从目录缓存获取中继列表
2. 并发拉取所有中继状态（失败的中继本轮直接丢弃）
3. 所有请求结束后统一对账
4. 写入快照，成功后发布偏移量
5. （可选）异步导出到 InfluxDB
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

import httpx

from .discovery import DiscoveryCache
from .errors import DiscoveryUnavailable, RelayFetchError, StorageError
from .metrics import InfluxExporter
from .models import RelayStatus
from .reconciler import CounterReconciler
from .relay_client import fetch_relay_status
from .store import SnapshotStore, format_timestamp

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """一轮采集的结果"""
    timestamp: str
    attempted: int
    entries: Dict[str, RelayStatus] = field(default_factory=dict)
    adjusted: Dict[str, int] = field(default_factory=dict)
    persisted: bool = False


async def collect_single_relay(
    client: httpx.AsyncClient,
    relay: str,
    timeout: float
) -> Optional[Tuple[str, RelayStatus]]:
    """拉取单个中继，失败返回 None"""
    try:
        return await fetch_relay_status(client, relay, timeout)
    except RelayFetchError as e:
        logger.debug(f"Relay skipped this cycle: {e}")
    except Exception as e:
        logger.warning(f"Unexpected error fetching relay {relay}: {e}", exc_info=True)
    return None


async def fetch_all(
    client: httpx.AsyncClient,
    relays: List[str],
    timeout: float = 3.0
) -> Dict[str, RelayStatus]:
    """
    并发拉取所有中继

    所有请求都结束（成功或失败）后才返回，失败的中继不出现在结果中。
    """
    tasks = [collect_single_relay(client, relay, timeout) for relay in relays]
    results = await asyncio.gather(*tasks)
    return {key: status for key, status in (r for r in results if r is not None)}


class RelayPoller:
    """后台采集循环（单写者）"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        discovery: DiscoveryCache,
        reconciler: CounterReconciler,
        store: SnapshotStore,
        exporter: Optional[InfluxExporter] = None,
        interval: float = 5.0,
        timeout: float = 3.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self._client = client
        self._discovery = discovery
        self._reconciler = reconciler
        self._store = store
        self._exporter = exporter
        self._interval = interval
        self._timeout = timeout
        self._clock = clock

        self._stop_event = asyncio.Event()
        self._export_tasks: Set[asyncio.Task] = set()
        self.last_cycle: Optional[CycleResult] = None

    async def run_cycle(self) -> CycleResult:
        """执行一轮采集"""
        try:
            relays = await self._discovery.list_relays()
        except DiscoveryUnavailable as e:
            logger.warning(f"{e}; polling zero relays this cycle")
            relays = []

        entries = await fetch_all(self._client, relays, self._timeout)

        moment = self._clock()
        result = CycleResult(timestamp=format_timestamp(moment), attempted=len(relays), entries=entries)

        # 先对账：即使写入失败，内存中的对账状态也要跟上最新观测
        result.adjusted = self._reconciler.reconcile_all(entries)

        try:
            self._store.append(result.timestamp, entries)
        except StorageError as e:
            logger.error(f"Snapshot persistence skipped: {e}")
        else:
            self._reconciler.publish()
            result.persisted = True

        if self._exporter is not None and entries:
            self._schedule_export(entries, moment)

        logger.info(f"Cycle {result.timestamp}: {len(entries)}/{len(relays)} relays responded")
        self.last_cycle = result
        return result

    def _schedule_export(self, entries: Dict[str, RelayStatus], moment: datetime):
        task = asyncio.create_task(self._exporter.export(entries, moment))
        self._export_tasks.add(task)
        task.add_done_callback(self._export_tasks.discard)

    async def run(self):
        """
        运行采集循环

        每轮之间间隔 interval 秒（扣除本轮耗时），直到 stop() 被调用。
        """
        logger.info(f"Starting collector loop (interval={self._interval}s, timeout={self._timeout}s)")
        loop = asyncio.get_running_loop()

        while not self._stop_event.is_set():
            started = loop.time()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Collector loop error: {e}", exc_info=True)

            wait_seconds = max(0.0, self._interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=wait_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info("Collector loop stopped")

    async def stop(self):
        """请求停止循环并等待未完成的导出任务"""
        self._stop_event.set()
        if self._export_tasks:
            await asyncio.gather(*self._export_tasks, return_exceptions=True)
