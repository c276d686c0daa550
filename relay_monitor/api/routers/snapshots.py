"""
快照查看 API

提供已存储快照的列表和单条查询（只读）。
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...errors import SnapshotNotFound
from ...models import Snapshot, SnapshotListResponse
from ...service import RelayMonitorService
from ..dependencies import get_service

router = APIRouter(prefix="/api/snapshots", tags=["snapshots"])


@router.get("", response_model=SnapshotListResponse)
async def list_snapshots(
    limit: int = Query(50, ge=1, le=1000, description="每页条数（1-1000）"),
    offset: int = Query(0, ge=0, description="偏移量"),
    service: RelayMonitorService = Depends(get_service)
):
    """按时间倒序列出快照时间戳"""
    keys = service.store.list_keys(limit=limit, offset=offset)
    return SnapshotListResponse(
        total=service.store.count(),
        limit=limit,
        offset=offset,
        keys=keys
    )


@router.get("/{timestamp}", response_model=Snapshot)
async def get_snapshot(timestamp: str, service: RelayMonitorService = Depends(get_service)):
    """获取单个快照的原始数据（未叠加偏移）"""
    try:
        return service.store.get(timestamp)
    except SnapshotNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Snapshot {timestamp} not found"
        )
