"""Realtime introspection — who is listening on which channel."""

from fastapi import APIRouter, Depends

from ignitor.realtime.broadcaster import Broadcaster
from ignitor.context import get_broadcaster

router = APIRouter(prefix="/realtime")


@router.get("/channels")
async def list_channels(broadcaster: Broadcaster = Depends(get_broadcaster)):
    channels = sorted(broadcaster.active_channels())
    return {
        "channels": [
            {"name": name, "clients": broadcaster.channel_count(name)}
            for name in channels
        ],
        "total_clients": broadcaster.total_clients(),
    }
