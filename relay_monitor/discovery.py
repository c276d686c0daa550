"""
中继目录缓存

从目录服务获取中继地址列表，在新鲜期内直接返回缓存。
过期后在下一次请求时才刷新（不使用独立定时器）；
刷新失败时继续返回旧列表，只有从未成功过才抛出 DiscoveryUnavailable。
"""

import logging
import time
from typing import Any, Callable, List, Optional

import httpx

from .errors import DiscoveryUnavailable

logger = logging.getLogger(__name__)


def parse_relay_list(document: Any) -> List[str]:
    """
    解析目录文档：{"relays": [{"url": "..."}, ...]}

    缺少 url 的条目会被跳过。
    """
    if not isinstance(document, dict):
        raise ValueError("directory document is not an object")

    relays = document.get("relays")
    if relays is None:
        return []
    if not isinstance(relays, list):
        raise ValueError("'relays' is not a list")

    result = []
    for item in relays:
        url = item.get("url") if isinstance(item, dict) else None
        if isinstance(url, str) and url:
            result.append(url)
        else:
            logger.debug(f"Skipping malformed relay descriptor: {item!r}")
    return result


class DiscoveryCache:
    """目录服务客户端 + 时间缓存"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        refresh_interval: float = 60.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self._client = client
        self._url = url
        self._refresh_interval = refresh_interval
        self._timeout = timeout
        self._clock = clock

        self._relays: Optional[List[str]] = None
        self._expires_at = 0.0

    @property
    def cached(self) -> Optional[List[str]]:
        """当前缓存的列表（未成功获取过时为 None）"""
        return list(self._relays) if self._relays is not None else None

    async def _fetch(self) -> List[str]:
        response = await self._client.get(self._url, timeout=self._timeout)
        response.raise_for_status()
        return parse_relay_list(response.json())

    async def list_relays(self) -> List[str]:
        """
        获取中继地址列表

        Raises:
            DiscoveryUnavailable: 目录服务不可用且没有缓存
        """
        now = self._clock()
        if self._relays is not None and now < self._expires_at:
            return list(self._relays)

        try:
            relays = await self._fetch()
        except (httpx.HTTPError, ValueError) as e:
            if self._relays is None:
                raise DiscoveryUnavailable(f"Relay directory {self._url} unavailable: {e}") from e
            logger.warning(f"Relay directory refresh failed, serving {len(self._relays)} cached relays: {e}")
            # 等下一个窗口再试，避免每轮采集都打到不可用的目录服务
            self._expires_at = now + self._refresh_interval
            return list(self._relays)

        logger.info(f"Relay directory refreshed: {len(relays)} relays")
        self._relays = relays
        self._expires_at = now + self._refresh_interval
        return list(relays)
