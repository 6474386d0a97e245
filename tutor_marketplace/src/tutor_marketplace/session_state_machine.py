"""
Session State Machine

Explicit transition table for session statuses and the authorization rules
deciding which party may make each change.

    requested --tutor--> accepted --tutor (after scheduled_at)--> completed
    requested --tutor--> rejected
    requested|accepted --student--> cancelled
"""

from datetime import datetime
from typing import Dict, FrozenSet

from tutor_marketplace.errors import (
    AuthorizationError,
    InvalidTransitionError,
    PreconditionError,
)
from tutor_marketplace.models import Role, SessionStatus, TutoringSession


TRANSITIONS: Dict[SessionStatus, Dict[Role, FrozenSet[SessionStatus]]] = {
    SessionStatus.REQUESTED: {
        Role.STUDENT: frozenset({SessionStatus.CANCELLED}),
        Role.TUTOR: frozenset({SessionStatus.ACCEPTED, SessionStatus.REJECTED}),
    },
    SessionStatus.ACCEPTED: {
        Role.STUDENT: frozenset({SessionStatus.CANCELLED}),
        Role.TUTOR: frozenset({SessionStatus.COMPLETED}),
    },
}


def allowed_targets(current: SessionStatus, role: Role) -> FrozenSet[SessionStatus]:
    """Statuses ``role`` may move a session to from ``current``. Empty for terminal statuses."""
    return TRANSITIONS.get(current, {}).get(role, frozenset())


def authorize_party(session: TutoringSession, actor_id: str) -> Role:
    """
    Return the side ``actor_id`` is on for this session.

    Raises:
        AuthorizationError: actor is neither the student nor the tutor
    """
    role = session.party_role(actor_id)
    if role is None:
        raise AuthorizationError(
            "Only the student or tutor on this session may change it",
            details={"session_id": session.id, "actor_id": actor_id},
        )
    return role


def check_transition(
    session: TutoringSession,
    actor_id: str,
    target: SessionStatus,
    now: datetime,
) -> Role:
    """
    Validate a status change without touching any state.

    Checks run in order: party membership, transition table, time gate.

    Returns:
        The acting party's role

    Raises:
        AuthorizationError: actor is not linked to the session
        InvalidTransitionError: target not allowed from the current status for this party
        PreconditionError: completion requested before scheduled_at
    """
    role = authorize_party(session, actor_id)

    if target not in allowed_targets(session.status, role):
        raise InvalidTransitionError(session.status.value, target.value, actor_role=role.value)

    if target is SessionStatus.COMPLETED and not session.scheduled_at < now:
        raise PreconditionError(
            "A session can only be marked completed after its scheduled time",
            details={"session_id": session.id, "scheduled_at": session.scheduled_at.isoformat()},
        )

    return role
