"""
Real-time presence registry.

Maps a user id to the Socket.IO connection (sid) it registered from. One
connection per user: a later registration overwrites the previous one.
"""
import logging
from typing import Dict, Set, List, Optional, Union
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

UserId = Union[str, int, float]


def normalize_user_id(user_id: UserId) -> str:
    """Clients send ids as numbers or strings; both forms name the same user."""
    if isinstance(user_id, float) and user_id.is_integer():
        # 15.0 and 15 are the same number on the wire
        return str(int(user_id))
    return str(user_id)


@dataclass
class PresenceRegistry:
    """
    In-memory presence tracking.

    Structure:
    - users[user_id] = socket_id
    - sockets[socket_id] = set(user_ids) (reverse index for disconnect cleanup)
    """
    # user_id -> socket_id
    users: Dict[str, str] = field(default_factory=dict)

    # socket_id -> {user_id} currently owned by that socket
    sockets: Dict[str, Set[str]] = field(default_factory=dict)

    def register(self, user_id: UserId, socket_id: str) -> Optional[str]:
        """
        Map user_id to socket_id, replacing any previous mapping.

        Returns the socket the user was previously mapped to, if it differs.
        """
        user_id = normalize_user_id(user_id)
        previous = self.users.get(user_id)

        if previous is not None and previous != socket_id:
            # The old socket no longer owns this user
            owned = self.sockets.get(previous)
            if owned is not None:
                owned.discard(user_id)
                if not owned:
                    del self.sockets[previous]

        self.users[user_id] = socket_id
        self.sockets.setdefault(socket_id, set()).add(user_id)

        if previous is not None and previous != socket_id:
            logger.debug(f"User {user_id} moved from socket {previous} to {socket_id}")
            return previous
        return None

    def unregister_socket(self, socket_id: str) -> List[str]:
        """
        Drop every entry whose value is socket_id.

        Removal is by socket, never by user id: a user who already
        re-registered on a newer socket keeps that mapping.
        Returns the user ids that were removed.
        """
        owned = self.sockets.pop(socket_id, set())
        removed = []
        for user_id in sorted(owned):
            if self.users.get(user_id) == socket_id:
                del self.users[user_id]
                removed.append(user_id)
        return removed

    def get_socket(self, user_id: UserId) -> Optional[str]:
        """Current socket for a user, or None when the user is not connected."""
        return self.users.get(normalize_user_id(user_id))

    def is_online(self, user_id: UserId) -> bool:
        return normalize_user_id(user_id) in self.users

    def get_online_users(self) -> List[str]:
        return sorted(self.users)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the user -> socket mapping."""
        return dict(self.users)

    def __len__(self) -> int:
        return len(self.users)

    def __contains__(self, user_id: object) -> bool:
        if isinstance(user_id, bool) or not isinstance(user_id, (str, int, float)):
            return False
        return self.is_online(user_id)

    def clear(self):
        """Clear all presence data (for testing)."""
        self.users.clear()
        self.sockets.clear()
