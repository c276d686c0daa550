"""
异常定义

按处理方式划分：
- RelayFetchError 及子类：单个中继拉取失败，本轮丢弃该中继
- DiscoveryUnavailable：目录服务不可用且无缓存
- StorageError 及子类：快照持久化失败，跳过本轮写入
- SnapshotNotFound：尚无快照（正常的空状态）
"""


class RelayMonitorError(Exception):
    """所有自定义异常的基类"""


# =============================================================================
# 中继拉取
# =============================================================================

class RelayFetchError(RelayMonitorError):
    """单个中继拉取失败"""

    def __init__(self, relay: str, message: str):
        self.relay = relay
        super().__init__(f"{relay}: {message}")


class RelayUnreachable(RelayFetchError):
    """连接失败或返回非 2xx"""


class RelayTimeout(RelayFetchError):
    """请求超时"""


class MalformedResponse(RelayFetchError):
    """响应不是合法的状态 JSON"""


class InvalidRelayAddress(RelayFetchError):
    """中继地址无法解析出状态端点"""


# =============================================================================
# 服务发现
# =============================================================================

class DiscoveryUnavailable(RelayMonitorError):
    """目录服务不可用，且没有可用的缓存列表"""


# =============================================================================
# 存储
# =============================================================================

class StorageError(RelayMonitorError):
    """快照存储错误基类"""


class StorageUnavailable(StorageError):
    """底层数据库无法写入"""


class SnapshotOrderError(StorageError):
    """快照时间戳不是严格递增"""


class SnapshotNotFound(RelayMonitorError):
    """存储中还没有任何快照"""
