"""
Session Booking Store

Persists tutoring sessions in the Supabase ``sessions`` table. Status and
payment changes are conditional updates keyed by the state the caller
observed, so a concurrent change is rejected instead of overwritten.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from tutor_marketplace.errors import ConflictError, NotFoundError, ValidationError, translate_store_error
from tutor_marketplace.models import (
    PaymentOption,
    SessionStatus,
    TutoringSession,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "sessions"

# Characters with meaning inside a PostgREST or= filter
_FILTER_RESERVED = set(',.:()"\\')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """
    Manages tutoring session records in Supabase.

    Records are never deleted; cancellation and rejection are statuses.
    """

    def __init__(
        self,
        supabase_client,
        clock: Callable[[], datetime] = utc_now,
        default_location: str = "Online",
    ):
        """
        Initialize SessionStore.

        Args:
            supabase_client: Supabase client instance
            clock: Returns the current UTC time (injectable for tests)
            default_location: Location reported for rows stored without one
        """
        self.supabase = supabase_client
        self.clock = clock
        self.default_location = default_location

    def session_to_dict(self, session: TutoringSession) -> Dict[str, Any]:
        """Convert TutoringSession to a row for the sessions table."""
        return {
            "student_id": session.student_id,
            "tutor_id": session.tutor_id,
            "subject": session.subject,
            "grade_level": session.grade_level,
            "scheduled_at": session.scheduled_at.isoformat(),
            "location": session.location,
            "price_per_hour": session.price_per_hour,
            "status": session.status.value,
            "payment_option": session.payment_option.value if session.payment_option else None,
        }

    def dict_to_session(self, data: Dict[str, Any]) -> TutoringSession:
        """Convert a sessions row to TutoringSession."""
        payment_option = data.get("payment_option")
        return TutoringSession(
            id=data["id"],
            student_id=data["student_id"],
            tutor_id=data["tutor_id"],
            subject=data["subject"],
            scheduled_at=parse_timestamp(data["scheduled_at"]),
            status=SessionStatus.parse(data.get("status") or SessionStatus.REQUESTED.value),
            grade_level=data.get("grade_level"),
            location=data.get("location") or self.default_location,
            price_per_hour=float(data.get("price_per_hour") or 0.0),
            payment_option=PaymentOption.parse(payment_option) if payment_option else None,
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )

    async def insert_session(self, session: TutoringSession) -> TutoringSession:
        """
        Insert a new session record.

        Returns:
            The stored session with its database-assigned id
        """
        row = self.session_to_dict(session)
        now = self.clock().isoformat()
        row["created_at"] = now
        row["updated_at"] = now
        try:
            result = self.supabase.table(SESSIONS_TABLE).insert(row).execute()
        except Exception as e:
            raise translate_store_error(e, "Create session") from e

        if not result.data:
            raise translate_store_error(RuntimeError("insert returned no rows"), "Create session")

        stored = self.dict_to_session(result.data[0])
        logger.info(f"✅ [SessionStore] Created session {stored.id} ({stored.subject}, {stored.status.value})")
        return stored

    async def get_session(self, session_id: str) -> TutoringSession:
        """
        Load a session by id.

        Raises:
            NotFoundError: No session with that id
        """
        try:
            result = self.supabase.table(SESSIONS_TABLE) \
                .select('*') \
                .eq('id', session_id) \
                .limit(1) \
                .execute()
        except Exception as e:
            raise translate_store_error(e, "Load session") from e

        if not result.data:
            raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
        return self.dict_to_session(result.data[0])

    async def list_sessions(
        self,
        identity_id: str,
        status: Optional[SessionStatus] = None,
    ) -> List[TutoringSession]:
        """
        List the sessions an identity takes part in, newest scheduled first.

        Args:
            identity_id: Student or tutor identity
            status: Only return sessions in this status

        Raises:
            ValidationError: identity_id contains filter syntax characters
        """
        if not identity_id or _FILTER_RESERVED.intersection(identity_id):
            raise ValidationError(f"Invalid identity id: {identity_id!r}", field="identity_id")

        try:
            query = self.supabase.table(SESSIONS_TABLE) \
                .select('*') \
                .or_(f"student_id.eq.{identity_id},tutor_id.eq.{identity_id}")
            if status is not None:
                query = query.eq('status', status.value)
            result = query.order('scheduled_at', desc=True).execute()
        except Exception as e:
            raise translate_store_error(e, "List sessions") from e

        return [self.dict_to_session(row) for row in result.data or []]

    async def compare_and_set(
        self,
        session_id: str,
        expected_status: SessionStatus,
        patch: Dict[str, Any],
        require_payment_unset: bool = False,
    ) -> TutoringSession:
        """
        Apply ``patch`` only if the stored status still equals ``expected_status``.

        Args:
            session_id: Session to update
            expected_status: Status the caller observed
            patch: Column values to write
            require_payment_unset: Also require payment_option to still be null

        Raises:
            ConflictError: The record changed since the caller read it
        """
        update_data = dict(patch)
        update_data["updated_at"] = self.clock().isoformat()
        try:
            query = self.supabase.table(SESSIONS_TABLE) \
                .update(update_data) \
                .eq('id', session_id) \
                .eq('status', expected_status.value)
            if require_payment_unset:
                query = query.is_('payment_option', 'null')
            result = query.execute()
        except Exception as e:
            raise translate_store_error(e, "Update session") from e

        if not result.data:
            logger.warning(f"⚠️ [SessionStore] Conditional update of session {session_id} matched no rows")
            raise ConflictError(
                f"Session {session_id} was changed by someone else; reload and try again",
                details={"session_id": session_id, "expected_status": expected_status.value},
            )
        return self.dict_to_session(result.data[0])
