"""
主程序入口

启动两个并发任务：
1. 5s 采集循环（启动前先回放历史快照）
2. HTTP 服务（状态页面 + JSON API）
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import uvicorn

from . import __version__
from .config import get_config
from .service import RelayMonitorService


def setup_logging():
    """配置日志"""
    config = get_config()

    # 日志格式
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # 获取日志级别
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    # 配置根日志
    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def acquire_single_instance_lock(lock_path: Path):
    """
    防止误启动多个实例（多个写者会破坏快照顺序和对账状态）。

    通过文件锁实现：同一路径下只能有一个进程持锁。
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(lock_path, "a+b")

    try:
        if os.name == "nt":
            import msvcrt  # type: ignore

            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            import fcntl  # type: ignore

            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        handle.close()
        raise RuntimeError(f"Lock {lock_path} is held by another relay-monitor process") from e

    handle.seek(0)
    handle.truncate()
    handle.write(str(os.getpid()).encode("utf-8"))
    handle.flush()
    return handle


async def run_api_server(service: RelayMonitorService):
    """运行 API 服务器"""
    from .api.app import create_app

    config = service.config
    app = create_app(service)

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False  # 我们用自己的日志
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def main():
    """主函数：启动所有任务"""
    logger = logging.getLogger(__name__)

    # 设置日志
    setup_logging()
    logger.info("=" * 60)
    logger.info(f"Relay Monitor v{__version__}")
    logger.info("=" * 60)

    # 加载配置
    config = get_config()
    logger.info(f"Config loaded: API={config.api.host}:{config.api.port}")
    logger.info(f"Database: {config.database.path}")
    logger.info(f"Discovery: {config.discovery.url}")

    # 单实例锁：避免重复启动
    try:
        db_path = Path(config.database.path)
        lock_handle = acquire_single_instance_lock(db_path.parent / "relay-monitor.lock")
    except (OSError, RuntimeError) as e:
        logger.error(str(e))
        return

    service = RelayMonitorService(config)
    try:
        # 回放历史快照后再开始采集和对外服务
        await service.start()
        await run_api_server(service)
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        await service.stop()
        lock_handle.close()


def cli():
    """命令行入口"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print(f"\nRelay Monitor v{__version__}: shutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
