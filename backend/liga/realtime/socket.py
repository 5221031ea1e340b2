"""
Socket.IO gateway.

Connection lifecycle, one state machine per socket:
    CONNECTED  -- register -->  REGISTERED  -- disconnect -->  DISCONNECTED
    CONNECTED  -- disconnect -->  DISCONNECTED

Events:
- register (inbound) - user id, bare or as {"userId": ...} / {"user_id": ...}
- disconnect (inbound)
- error (outbound) - {"message": str} when a register payload is unusable

Outbound pushes to a single user go through `emit_to_user`, which resolves
the user's current socket in the presence registry.
"""
import math

import socketio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from liga.core.logging import ws_logger
from liga.core.security import OriginPolicy
from liga.realtime.presence import PresenceRegistry, UserId, normalize_user_id


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    REGISTERED = "registered"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class Connected:
    origin: Optional[str] = None


@dataclass(frozen=True)
class Registered:
    user_id: str


@dataclass(frozen=True)
class Disconnected:
    reason: Optional[str] = None


ConnectionEvent = Union[Connected, Registered, Disconnected]


def create_socket_server() -> socketio.AsyncServer:
    """
    Socket.IO server in ASGI mode.
    CORS headers are echoed for every origin; the gateway's connect handler
    applies the origin policy and refuses the handshake.
    """
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins="*",
        cors_credentials=True,
        logger=False,
        engineio_logger=False,
    )


def extract_user_id(data: Any) -> Optional[str]:
    """Pull a usable user id out of a register payload."""
    if isinstance(data, dict):
        data = data.get("userId", data.get("user_id"))

    # bool is an int subclass but never a user id
    if isinstance(data, bool) or data is None:
        return None
    if isinstance(data, int):
        return normalize_user_id(data)
    if isinstance(data, float) and math.isfinite(data):
        return normalize_user_id(data)
    if isinstance(data, str) and data.strip():
        return normalize_user_id(data.strip())
    return None


class RealtimeGateway:
    """
    Relays connection events into the presence registry.

    The registry is injected so the HTTP side (notifications, stats) and the
    gateway share one instance without module globals.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        presence: PresenceRegistry,
        policy: OriginPolicy,
    ):
        self.sio = sio
        self.presence = presence
        self.policy = policy
        self.states: Dict[str, ConnectionState] = {}

        sio.on("connect", self.on_connect)
        sio.on("register", self.on_register)
        sio.on("disconnect", self.on_disconnect)

    # ------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------

    def handle(self, sid: str, event: ConnectionEvent) -> ConnectionState:
        """
        Apply one event to a socket's state and the registry.
        Runs without awaiting, so registry updates never interleave.
        """
        if isinstance(event, Connected):
            self.states[sid] = ConnectionState.CONNECTED
            ws_logger.info(f"Usuario conectado: {sid}", origin=event.origin)
            return ConnectionState.CONNECTED

        if isinstance(event, Registered):
            if sid not in self.states:
                ws_logger.warn(f"Register from unknown socket {sid} ignored", user_id=event.user_id)
                return ConnectionState.DISCONNECTED

            replaced = self.presence.register(event.user_id, sid)
            self.states[sid] = ConnectionState.REGISTERED
            ws_logger.info(
                f"Usuario ID {event.user_id} registrado con socket ID {sid}",
                replaced_socket=replaced,
            )
            return ConnectionState.REGISTERED

        if isinstance(event, Disconnected):
            self.states.pop(sid, None)
            removed = self.presence.unregister_socket(sid)
            ws_logger.info(f"Usuario desconectado: {sid}", users=removed, reason=event.reason)
            return ConnectionState.DISCONNECTED

        raise TypeError(f"Unknown connection event: {event!r}")

    def get_state(self, sid: str) -> ConnectionState:
        return self.states.get(sid, ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------
    # Socket.IO handlers
    # ------------------------------------------------------------

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> bool:
        origin = environ.get("HTTP_ORIGIN") if environ else None
        if not self.policy.allows(origin):
            ws_logger.error(f"Blocked by Socket.IO CORS: {origin}", sid=sid)
            return False

        self.handle(sid, Connected(origin=origin))
        return True

    async def on_register(self, sid: str, data: Any = None):
        user_id = extract_user_id(data)
        if user_id is None:
            ws_logger.warn(f"Invalid register payload from {sid}", payload=repr(data))
            await self.sio.emit("error", {"message": "userId is required"}, to=sid)
            return

        self.handle(sid, Registered(user_id=user_id))

    async def on_disconnect(self, sid: str, reason: Optional[str] = None):
        self.handle(sid, Disconnected(reason=str(reason) if reason is not None else None))

    # ------------------------------------------------------------
    # Emit helpers (called from route collaborators)
    # ------------------------------------------------------------

    async def emit_to_user(self, user_id: UserId, event: str, data: Any) -> bool:
        """
        Emit an event to a user's live socket.
        Returns False when the user is not connected.
        """
        sid = self.presence.get_socket(user_id)
        if sid is None:
            ws_logger.debug(f"User {user_id} offline, {event} not delivered")
            return False

        await self.sio.emit(event, data, to=sid)
        ws_logger.debug(f"Emitted {event} to user {user_id}", sid=sid)
        return True
