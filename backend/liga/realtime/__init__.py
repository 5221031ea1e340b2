"""
Real-time module for Socket.IO based presence.
"""
from liga.realtime.presence import PresenceRegistry
from liga.realtime.socket import RealtimeGateway, create_socket_server

__all__ = ["PresenceRegistry", "RealtimeGateway", "create_socket_server"]
