"""
依赖注入模块

提供 FastAPI 依赖项。
"""

from fastapi import Request

from ..service import RelayMonitorService


async def get_service(request: Request) -> RelayMonitorService:
    """获取服务实例（由 create_app 挂在 app.state 上）"""
    return request.app.state.service
