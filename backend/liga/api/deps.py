from fastapi import Request

from liga.realtime.presence import PresenceRegistry
from liga.realtime.socket import RealtimeGateway


def get_presence(request: Request) -> PresenceRegistry:
    """Presence registry shared with the Socket.IO gateway."""
    return request.app.state.presence


def get_gateway(request: Request) -> RealtimeGateway:
    """Gateway for pushing events to a connected user."""
    return request.app.state.gateway
