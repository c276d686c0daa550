"""
测试单个中继拉取

使用 httpx.MockTransport 模拟中继 /status 端点。
"""

import asyncio

import httpx
import pytest

from conftest import status_payload
from relay_monitor.errors import InvalidRelayAddress, MalformedResponse, RelayTimeout, RelayUnreachable
from relay_monitor.relay_client import fetch_relay_status, relay_key, status_url

RELAY = "relay://203.0.113.7:22067/?id=ABCDEF&pingInterval=1m0s&networkTimeout=2m0s&statusAddr=:22070"


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestAddressParsing:
    """地址解析测试"""

    def test_status_url(self):
        assert status_url(RELAY) == "http://203.0.113.7:22070/status"

    def test_status_url_ipv6(self):
        relay = "relay://[2001:db8::1]:22067/?statusAddr=:22070"
        assert status_url(relay) == "http://[2001:db8::1]:22070/status"

    def test_missing_status_addr(self):
        with pytest.raises(InvalidRelayAddress):
            status_url("relay://203.0.113.7:22067/?id=ABCDEF")

    def test_missing_host(self):
        with pytest.raises(InvalidRelayAddress):
            status_url("not a relay url")

    def test_relay_key(self):
        assert relay_key(RELAY) == "203.0.113.7:22067"
        assert relay_key("garbage") == "garbage"


class TestFetch:
    """拉取测试"""

    @pytest.mark.asyncio
    async def test_success(self):
        """测试：正常返回"""
        async def handler(request: httpx.Request) -> httpx.Response:
            assert request.url == httpx.URL("http://203.0.113.7:22070/status")
            return httpx.Response(200, json=status_payload(
                123456, sessions=3, connections=7, rates=[1, 2, 3, 4, 5, 6], provided_by="ACME"
            ))

        async with make_client(handler) as client:
            key, status = await fetch_relay_status(client, RELAY, timeout=2)

        assert key == "203.0.113.7:22067"
        assert status.bytes_proxied == 123456
        assert status.num_active_sessions == 3
        assert status.num_connections == 7
        assert status.rates == [1, 2, 3, 4, 5, 6]
        assert status.provided_by == "ACME"

    @pytest.mark.asyncio
    async def test_missing_options(self):
        """测试：没有 options 时 provided-by 为空"""
        payload = status_payload(1)
        del payload["options"]

        async def handler(request):
            return httpx.Response(200, json=payload)

        async with make_client(handler) as client:
            _, status = await fetch_relay_status(client, RELAY)
        assert status.provided_by == ""

    @pytest.mark.asyncio
    async def test_timeout(self):
        """测试：超时"""
        async def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(RelayTimeout):
                await fetch_relay_status(client, RELAY, timeout=0.1)

    @pytest.mark.asyncio
    async def test_slow_body_is_cut_off(self):
        """测试：响应体逐字节缓慢到达时，整个请求仍受超时限制"""
        async def drip():
            for byte in b'{"bytesProxied": 1}':
                await asyncio.sleep(0.2)
                yield bytes([byte])

        async def handler(request):
            return httpx.Response(200, content=drip())

        loop = asyncio.get_running_loop()
        started = loop.time()
        async with make_client(handler) as client:
            with pytest.raises(RelayTimeout):
                await fetch_relay_status(client, RELAY, timeout=0.5)
        assert loop.time() - started < 1.5

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        """测试：连接失败"""
        async def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(RelayUnreachable):
                await fetch_relay_status(client, RELAY)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """测试：非 2xx 响应"""
        async def handler(request):
            return httpx.Response(503, text="busy")

        async with make_client(handler) as client:
            with pytest.raises(RelayUnreachable, match="HTTP 503"):
                await fetch_relay_status(client, RELAY)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        b"not-json",
        b"[1, 2, 3]",
        b'{"numActiveSessions": 1}',
    ])
    async def test_malformed_body(self, body):
        """测试：不是合法的状态文档"""
        async def handler(request):
            return httpx.Response(200, content=body)

        async with make_client(handler) as client:
            with pytest.raises(MalformedResponse):
                await fetch_relay_status(client, RELAY)

    @pytest.mark.asyncio
    async def test_wrong_rate_count(self):
        """测试：速率数组不是 6 个元素"""
        async def handler(request):
            return httpx.Response(200, json=status_payload(1, rates=[1, 2, 3, 4, 5]))

        async with make_client(handler) as client:
            with pytest.raises(MalformedResponse):
                await fetch_relay_status(client, RELAY)

    @pytest.mark.asyncio
    async def test_negative_counter(self):
        """测试：计数为负数"""
        async def handler(request):
            return httpx.Response(200, json=status_payload(-5))

        async with make_client(handler) as client:
            with pytest.raises(MalformedResponse):
                await fetch_relay_status(client, RELAY)

    @pytest.mark.asyncio
    async def test_invalid_address_does_not_hit_network(self):
        """测试：地址无效时不发请求"""
        calls = []

        async def handler(request):
            calls.append(request)
            return httpx.Response(200, json=status_payload(1))

        async with make_client(handler) as client:
            with pytest.raises(InvalidRelayAddress):
                await fetch_relay_status(client, "relay://203.0.113.7:22067/")
        assert calls == []
