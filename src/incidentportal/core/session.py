"""Current-user session and role resolution.

The portal keeps the logged-in user's profile in a key-value store (the
browser's local storage in the web client). The core never manages login or
logout; it only reads the profile, once per session and again whenever the
caller says it might have changed, and turns it into an explicit ``Session``
value that is handed to the mutation controller and comment reconciler.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

PRIVILEGED_ROLE = "admin"
ORDINARY_ROLE = "usuario"

PROFILE_KEYS = ("user", "usuario")
TOKEN_KEY = "authToken"

_ROLE_KEYS = ("role", "rol", "Role", "Rol", "ROLE", "ROL", "userRole")
_USER_ID_KEYS = ("id", "usuarioId", "usuario_id", "user_id", "_id", "id_usuario")
_NAME_KEYS = ("nombre", "name", "displayName")


class KeyValueStore(Protocol):
    """Minimal get/set/remove store holding the session profile."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-memory ``KeyValueStore`` that JSON-encodes values like local storage does."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, key: str) -> Any:
        value = self._data.get(key)
        if not value:
            return None
        return json.loads(value)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


def _first(profile: Mapping, names: tuple[str, ...]) -> Any:
    for name in names:
        value = profile.get(name)
        if value is not None and value != "":
            return value
    return None


def _role_string(value: Any) -> str:
    """Role as a lower-cased string; roles may arrive as ``{"nombre": "ADMIN"}``."""
    if isinstance(value, Mapping):
        value = _first(value, ("nombre", "name", "role", "rol"))
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return ORDINARY_ROLE


@dataclass(frozen=True)
class Session:
    """Identity and role of the current caller."""

    user_id: str | None = None
    display_name: str = ""
    role: str = ORDINARY_ROLE

    @property
    def is_authenticated(self) -> bool:
        """True when a user id could be resolved."""
        return self.user_id is not None

    @property
    def is_privileged(self) -> bool:
        """True for the administrative role."""
        return self.role == PRIVILEGED_ROLE

    @classmethod
    def anonymous(cls) -> Session:
        """Session with no user."""
        return cls()

    @classmethod
    def from_profile(cls, profile: Any) -> Session:
        """Build a session from a stored user profile of unknown shape."""
        if not isinstance(profile, Mapping):
            return cls.anonymous()
        user_id = _first(profile, _USER_ID_KEYS)
        name = _first(profile, _NAME_KEYS)
        return cls(
            user_id=str(user_id) if user_id is not None else None,
            display_name=str(name) if name is not None else "",
            role=_role_string(_first(profile, _ROLE_KEYS)),
        )


def load_session(store: KeyValueStore) -> Session:
    """Resolve the current session from the key-value store.

    Reads the ``user`` profile, falling back to ``usuario``. A missing or
    unreadable profile yields an anonymous session.
    """
    for profile_key in PROFILE_KEYS:
        try:
            profile = store.get(profile_key)
        except (ValueError, TypeError):
            logger.warning("Unreadable session profile under %r", profile_key)
            continue
        if profile:
            session = Session.from_profile(profile)
            logger.debug("Session resolved: user=%s role=%s", session.user_id, session.role)
            return session
    return Session.anonymous()


def load_token(store: KeyValueStore) -> str | None:
    """Bearer token stored alongside the profile, if any."""
    try:
        token = store.get(TOKEN_KEY)
    except (ValueError, TypeError):
        return None
    return str(token) if token else None


def can_mutate(session: Session, author_id: Any, *, allow_author: bool = True) -> bool:
    """Role check shared by incidents and comments.

    The privileged role may always mutate. Otherwise the caller must be the
    record's author, and only where the domain allows authors to act
    (``allow_author``).
    """
    if session.is_privileged:
        return True
    if not allow_author or not session.is_authenticated or author_id is None:
        return False
    return str(author_id) == session.user_id
