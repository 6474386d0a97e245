"""
Payment Selection

Records the payment split a student intends to use for an accepted
session. No money moves; the label is informational.
"""

import logging
from typing import Union

from tutor_marketplace.errors import AuthorizationError, ConflictError, PreconditionError
from tutor_marketplace.models import PaymentOption, SessionStatus, TutoringSession
from tutor_marketplace.session_store import SessionStore

logger = logging.getLogger(__name__)


class PaymentSelection:
    """Sets the immutable payment option on a session."""

    def __init__(self, store: SessionStore):
        self.store = store

    async def set_payment_option(
        self,
        session_id: str,
        option: Union[PaymentOption, str],
        acting_student_id: str,
    ) -> TutoringSession:
        """
        Record ``option`` on an accepted session.

        Raises:
            ValidationError: option is not a known label
            NotFoundError: session does not exist
            AuthorizationError: acting identity is not the session's student
            ConflictError: an option is already recorded, or the record changed concurrently
            PreconditionError: session is not in the accepted status
        """
        chosen = PaymentOption.parse(option)
        session = await self.store.get_session(session_id)

        if acting_student_id != session.student_id:
            raise AuthorizationError(
                "Only the session's student may choose a payment option",
                details={"session_id": session_id, "actor_id": acting_student_id},
            )

        if session.payment_option is not None:
            raise ConflictError(
                f"Payment option already set to '{session.payment_option.value}'",
                details={"session_id": session_id, "payment_option": session.payment_option.value},
            )

        if session.status is not SessionStatus.ACCEPTED:
            raise PreconditionError(
                f"Payment option can only be chosen for an accepted session (status is '{session.status.value}')",
                details={"session_id": session_id, "status": session.status.value},
            )

        updated = await self.store.compare_and_set(
            session_id,
            SessionStatus.ACCEPTED,
            {"payment_option": chosen.value},
            require_payment_unset=True,
        )
        logger.info(f"✅ [PaymentSelection] Session {session_id} payment option set to '{chosen.value}'")
        return updated
