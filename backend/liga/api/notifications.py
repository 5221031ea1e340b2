"""
Notification push over the realtime channel.
Delivery is best effort: users without a live socket are reported as not delivered.
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from liga.api.deps import get_gateway, get_presence
from liga.realtime.presence import PresenceRegistry
from liga.realtime.socket import RealtimeGateway

router = APIRouter()

NOTIFICATION_EVENT = "notification"


@router.get("/online")
async def list_online_users(presence: PresenceRegistry = Depends(get_presence)):
    online = presence.get_online_users()
    return {"online_user_ids": online, "count": len(online)}


@router.post("/{user_id}")
async def push_notification(
    user_id: str,
    payload: Dict[str, Any] = Body(...),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    delivered = await gateway.emit_to_user(user_id, NOTIFICATION_EVENT, payload)
    return {"user_id": user_id, "delivered": delivered}
