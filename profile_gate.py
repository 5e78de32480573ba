"""
Profile completeness gate.

Checkout cannot proceed for a user without a name, phone and a full postal
address. When the gate is closed the checkout intent is parked on the session
and replayed once the profile has been saved, so nothing has to be re-selected.
"""
import logging
from typing import List, Optional

from pydantic import Field

from schemas import ApiModel, PendingIntent, UserProfile
from session import Session

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "name",
    "phone",
    "address.street",
    "address.city",
    "address.state",
    "address.pincode",
)


class GateDecision(ApiModel):
    proceed: bool
    missing: List[str] = Field(default_factory=list)
    intent: Optional[PendingIntent] = None


def _value(user: UserProfile, dotted: str):
    target = user
    for part in dotted.split("."):
        target = getattr(target, part, None)
        if target is None:
            return None
    return target


def missing_fields(user: Optional[UserProfile]) -> List[str]:
    if user is None:
        return list(REQUIRED_FIELDS)
    return [name for name in REQUIRED_FIELDS if not str(_value(user, name) or "").strip()]


def is_complete(user: Optional[UserProfile]) -> bool:
    if user is None:
        return False
    if user.profile_complete is True:
        return True
    return not missing_fields(user)


def check_gate(session: Session, intent: PendingIntent) -> GateDecision:
    user = session.identity.record if session.identity else None
    if is_complete(user):
        return GateDecision(proceed=True, intent=intent)

    session.pending_intent = intent
    missing = missing_fields(user)
    logger.info(f"Checkout paused for session {session.session_id}: missing {', '.join(missing)}")
    return GateDecision(proceed=False, missing=missing, intent=intent)


def release_intent(session: Session) -> Optional[PendingIntent]:
    intent, session.pending_intent = session.pending_intent, None
    return intent
