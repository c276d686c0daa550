"""
快照存储

封装 SQLite 操作。每个采集周期写入一条快照：
- timestats：一行一个周期，主键为 RFC3339 时间戳
- timestats_entries：周期内每个中继一行，状态以 JSON 存储

时间戳统一为 UTC、固定微秒精度，字符串顺序即时间顺序。
使用 WAL 模式，读请求不会阻塞采集循环的写入。
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Mapping, Optional

from pydantic import ValidationError

from .errors import SnapshotNotFound, SnapshotOrderError, StorageUnavailable
from .models import RelayStatus, Snapshot

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

SCHEMA = """
CREATE TABLE IF NOT EXISTS timestats (
    ts TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS timestats_entries (
    ts TEXT NOT NULL,
    relay TEXT NOT NULL,
    status TEXT NOT NULL,
    PRIMARY KEY (ts, relay),
    FOREIGN KEY (ts) REFERENCES timestats(ts) ON DELETE CASCADE
);
"""


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """生成快照键（UTC，微秒精度）"""
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


class SnapshotStore:
    """快照存储类"""

    def __init__(self, db_path: str, timeout: float = 30):
        """
        初始化存储

        Args:
            db_path: 数据库文件路径
            timeout: SQLite 锁等待超时（秒）
        """
        self.db_path = Path(db_path)
        self.timeout = timeout

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        使用方式：
            with store.get_conn() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self):
        """创建表（幂等）"""
        with self.get_conn() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)

    # =========================================================================
    # 写入
    # =========================================================================

    def append(self, timestamp: str, entries: Mapping[str, RelayStatus]) -> Snapshot:
        """
        追加一条快照（单事务写入整轮数据）

        Raises:
            SnapshotOrderError: 时间戳不大于最新快照
            StorageUnavailable: 数据库无法写入
        """
        rows = [(timestamp, relay, status.to_json()) for relay, status in entries.items()]

        try:
            with self.get_conn() as conn:
                # 立即获取写锁，保证检查和写入之间没有其他写者
                conn.execute("BEGIN IMMEDIATE")
                try:
                    latest = conn.execute("SELECT MAX(ts) FROM timestats").fetchone()[0]
                    if latest is not None and timestamp <= latest:
                        raise SnapshotOrderError(
                            f"Snapshot key {timestamp} is not after latest {latest}"
                        )
                    conn.execute("INSERT INTO timestats (ts) VALUES (?)", (timestamp,))
                    conn.executemany(
                        "INSERT INTO timestats_entries (ts, relay, status) VALUES (?, ?, ?)",
                        rows
                    )
                    conn.execute("COMMIT")
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot write snapshot {timestamp}: {e}") from e

        logger.debug(f"Stored snapshot {timestamp} with {len(rows)} relays")
        return Snapshot(timestamp=timestamp, entries=dict(entries))

    # =========================================================================
    # 读取
    # =========================================================================

    def _load(self, conn: sqlite3.Connection, timestamp: str) -> Snapshot:
        cursor = conn.execute(
            "SELECT relay, status FROM timestats_entries WHERE ts = ? ORDER BY relay",
            (timestamp,)
        )
        entries = {}
        errors = {}
        for row in cursor.fetchall():
            try:
                entries[row["relay"]] = RelayStatus.model_validate_json(row["status"])
            except ValidationError as e:
                logger.warning(f"Undecodable entry {row['relay']} in snapshot {timestamp}")
                errors[row["relay"]] = f"stored status is unreadable: {e.error_count()} errors"
        return Snapshot(timestamp=timestamp, entries=entries, errors=errors)

    def latest(self) -> Snapshot:
        """
        获取最新快照

        Raises:
            SnapshotNotFound: 还没有任何快照
        """
        with self.get_conn() as conn:
            # 同一个读事务内取键和数据，避免读到两个不同的快照
            conn.execute("BEGIN")
            try:
                row = conn.execute("SELECT MAX(ts) FROM timestats").fetchone()
                if row[0] is None:
                    raise SnapshotNotFound("No snapshot stored yet")
                return self._load(conn, row[0])
            finally:
                if conn.in_transaction:
                    conn.execute("COMMIT")

    def get(self, timestamp: str) -> Snapshot:
        """
        按时间戳获取快照

        Raises:
            SnapshotNotFound: 不存在
        """
        with self.get_conn() as conn:
            row = conn.execute("SELECT ts FROM timestats WHERE ts = ?", (timestamp,)).fetchone()
            if row is None:
                raise SnapshotNotFound(f"Snapshot {timestamp} not found")
            return self._load(conn, timestamp)

    def all_in_order(self) -> Iterator[Snapshot]:
        """按时间顺序逐个返回所有快照（惰性，每次调用都从头开始）"""
        with self.get_conn() as conn:
            keys = [row["ts"] for row in conn.execute("SELECT ts FROM timestats ORDER BY ts ASC")]
            for key in keys:
                yield self._load(conn, key)

    def list_keys(self, limit: int = 50, offset: int = 0) -> List[str]:
        """按时间倒序分页列出快照键"""
        with self.get_conn() as conn:
            cursor = conn.execute(
                "SELECT ts FROM timestats ORDER BY ts DESC LIMIT ? OFFSET ?",
                (limit, offset)
            )
            return [row["ts"] for row in cursor.fetchall()]

    def latest_key(self) -> Optional[str]:
        """最新快照的时间戳（没有快照时为 None）"""
        with self.get_conn() as conn:
            return conn.execute("SELECT MAX(ts) FROM timestats").fetchone()[0]

    def count(self) -> int:
        """快照总数"""
        with self.get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM timestats").fetchone()[0]
