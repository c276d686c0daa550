"""
单个中继状态拉取

中继地址形如 relay://1.2.3.4:22067/?id=...&statusAddr=:22070，
状态端点为 http://<主机><statusAddr>/status。
"""

import asyncio
import json
import logging
from typing import Tuple
from urllib.parse import parse_qs, urlsplit

import httpx
from pydantic import ValidationError

from .errors import InvalidRelayAddress, MalformedResponse, RelayTimeout, RelayUnreachable
from .models import RelayStatus

logger = logging.getLogger(__name__)


def create_client() -> httpx.AsyncClient:
    """
    创建共享的 HTTP 客户端

    连接数不设上限：每轮对所有中继同时发起请求，
    排队等待空闲连接的中继会被误判为超时。
    """
    limits = httpx.Limits(max_connections=None, max_keepalive_connections=20)
    return httpx.AsyncClient(follow_redirects=True, limits=limits)


def relay_key(relay: str) -> str:
    """
    获取中继在快照和对账状态中的键（host:port）

    解析失败时返回原始地址。
    """
    netloc = urlsplit(relay).netloc
    return netloc or relay


def status_url(relay: str) -> str:
    """
    根据中继地址拼出状态端点 URL

    Raises:
        InvalidRelayAddress: 缺少主机或 statusAddr 参数
    """
    parts = urlsplit(relay)
    host = parts.hostname
    if not host:
        raise InvalidRelayAddress(relay, "missing host")

    status_addr = parse_qs(parts.query).get("statusAddr", [""])[0]
    if not status_addr:
        raise InvalidRelayAddress(relay, "missing statusAddr")

    # IPv6 主机需要加方括号
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}{status_addr}/status"


def parse_status(relay: str, body: bytes) -> RelayStatus:
    """
    解析状态 JSON

    Raises:
        MalformedResponse: 不是 JSON 或字段不符合要求
    """
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedResponse(relay, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponse(relay, "status document is not an object")

    try:
        return RelayStatus.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(relay, f"unexpected status schema ({e.error_count()} errors)") from e


async def fetch_relay_status(
    client: httpx.AsyncClient,
    relay: str,
    timeout: float = 3.0
) -> Tuple[str, RelayStatus]:
    """
    拉取单个中继的状态

    Args:
        client: 共享的 HTTP 客户端
        relay: 中继地址
        timeout: 超时时间（秒）

    Returns:
        (中继 URL, 状态)

    Raises:
        RelayUnreachable / RelayTimeout / MalformedResponse / InvalidRelayAddress
    """
    url = status_url(relay)

    try:
        # httpx 的超时只限制单次连接/读取，整个请求（含响应体）另设上限
        response = await asyncio.wait_for(client.get(url, timeout=timeout), timeout)
        response.raise_for_status()
    except asyncio.TimeoutError as e:
        raise RelayTimeout(relay, f"no complete response within {timeout}s") from e
    except httpx.TimeoutException as e:
        raise RelayTimeout(relay, f"timed out after {timeout}s") from e
    except httpx.HTTPStatusError as e:
        raise RelayUnreachable(relay, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise RelayUnreachable(relay, str(e) or type(e).__name__) from e

    return relay_key(relay), parse_status(relay, response.content)
