"""
Session identity and storage.

The backend hands back a login blob whose shape depends on the login path:
``{token, customer: {...}}``, ``{token, user: {...}}`` or a flat user record.
It is normalized once, at login, into an ``Identity``; nothing downstream
looks at the raw blob again.
"""
import os
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

import database
from errors import AuthenticationError
from schemas import ApiModel, Identity, OrderDraft, PendingIntent, UserProfile

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 24 * 60 * 60


class Session(ApiModel):
    session_id: str
    identity: Optional[Identity] = None
    pending_intent: Optional[PendingIntent] = None
    draft: Optional[OrderDraft] = None


def normalize_identity(blob: Any) -> Optional[Identity]:
    if not isinstance(blob, dict):
        logger.warning(f"Ignoring login data that is not an object: {type(blob).__name__}")
        return None

    token = blob.get("token")
    if isinstance(blob.get("customer"), dict):
        kind, record = "customer", blob["customer"]
    elif isinstance(blob.get("user"), dict):
        kind, record = "user", blob["user"]
    else:
        kind, record = "flat", {k: v for k, v in blob.items() if k != "token"}

    return Identity(kind=kind, record=UserProfile.model_validate(record), token=token)


def require_user_id(identity: Optional[Identity]) -> str:
    if identity is None:
        raise AuthenticationError("Please log in to continue")
    if not identity.user_id:
        raise AuthenticationError("User ID not found. Please log in again.")
    return identity.user_id


class SessionStore:
    """Load/save/clear lifecycle for sessions.

    Backed by the ``session`` collection when MongoDB is configured, by a
    process-local dict otherwise. Sessions untouched for ``ttl`` seconds
    expire: a TTL index on ``updated_at`` in MongoDB, a timestamp check in
    memory.
    """

    collection = "session"

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.ttl = ttl if ttl is not None else float(os.getenv("SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL))
        self._clock = clock
        self._memory: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        if self.persistent:
            database.ensure_ttl_index(self.collection, "updated_at", int(self.ttl))

    @property
    def persistent(self) -> bool:
        return database.db is not None

    def __len__(self) -> int:
        return len(self._memory)

    def _remember(self, session: Session) -> None:
        self._memory[session.session_id] = (
            self._clock() + self.ttl,
            session.model_dump(mode="json", by_alias=True),
        )

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid, (expires_at, _) in self._memory.items() if expires_at <= now]
        for sid in expired:
            del self._memory[sid]
        if expired:
            logger.info(f"Expired {len(expired)} idle session(s)")
        return len(expired)

    def create(self, identity: Optional[Identity]) -> Session:
        session = Session(session_id=uuid.uuid4().hex, identity=identity)
        if self.persistent:
            database.create_document(self.collection, session)
        else:
            self.purge_expired()
            self._remember(session)
        logger.info(f"Created session {session.session_id} ({identity.kind if identity else 'anonymous'})")
        return session

    def load(self, session_id: str) -> Optional[Session]:
        if self.persistent:
            docs = database.get_documents(self.collection, {"sessionId": session_id}, limit=1)
            doc = docs[0] if docs else None
        else:
            entry = self._memory.get(session_id)
            if entry is not None and entry[0] <= self._clock():
                del self._memory[session_id]
                entry = None
            doc = entry[1] if entry else None
        return Session.model_validate(doc) if doc else None

    def save(self, session: Session) -> None:
        if self.persistent:
            database.upsert_document(self.collection, {"sessionId": session.session_id}, session)
        else:
            self._remember(session)

    def clear(self, session_id: str) -> None:
        if self.persistent:
            database.delete_documents(self.collection, {"sessionId": session_id})
        else:
            self._memory.pop(session_id, None)
        logger.info(f"Cleared session {session_id}")
