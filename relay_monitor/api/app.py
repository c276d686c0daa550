"""
FastAPI 应用配置

配置 CORS、路由注册，并把服务实例挂到 app.state。
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..service import RelayMonitorService
from .routers import snapshots, status

logger = logging.getLogger(__name__)


def create_app(service: RelayMonitorService) -> FastAPI:
    """
    创建 FastAPI 应用实例

    服务的启动和停止由调用方负责（见 main.py）。
    """
    app = FastAPI(
        title="Relay Monitor",
        description="中继状态采集、计数对账和聚合视图",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )
    app.state.service = service

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=service.config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # 注册路由
    app.include_router(status.router)
    app.include_router(snapshots.router)

    logger.debug("API routes registered")
    return app
