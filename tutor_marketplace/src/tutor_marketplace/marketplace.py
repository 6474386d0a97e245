"""
Tutor Marketplace

Entry point used by the API layer: tutor search, portfolio management and
the session booking workflow. Every method either returns its result or
raises one MarketplaceError; nothing is partially written.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from tutor_marketplace.config import MarketplaceConfig
from tutor_marketplace.errors import AuthorizationError, NotFoundError, ValidationError
from tutor_marketplace.models import (
    Identity,
    PaymentOption,
    Role,
    SearchCriteria,
    SessionBooking,
    SessionStatus,
    TutoringSession,
    TutorPortfolio,
    TutorProfile,
)
from tutor_marketplace.payment_selection import PaymentSelection
from tutor_marketplace.session_state_machine import authorize_party, check_transition
from tutor_marketplace.session_store import SessionStore, utc_now
from tutor_marketplace.tutor_directory import TutorDirectory

logger = logging.getLogger(__name__)


class TutorMarketplace:
    """
    Facade over the directory, session store, state machine and payment selection.

    Holds no identity state; the acting identity is passed into every call.
    """

    def __init__(
        self,
        supabase_client,
        config: Optional[MarketplaceConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize TutorMarketplace.

        Args:
            supabase_client: Supabase client instance
            config: Business settings (defaults to environment config)
            clock: Returns the current UTC time
        """
        self.config = config or MarketplaceConfig.from_env()
        self.clock = clock
        self.directory = TutorDirectory(supabase_client, self.config)
        self.store = SessionStore(
            supabase_client,
            clock=clock,
            default_location=self.config.default_session_location,
        )
        self.payments = PaymentSelection(self.store)

    # ==================== Directory ====================

    async def search_tutors(self, criteria: Optional[SearchCriteria] = None) -> List[TutorProfile]:
        return await self.directory.search_tutors(criteria)

    async def get_portfolio(self, tutor_id: str) -> TutorPortfolio:
        portfolio = await self.directory.get_portfolio(tutor_id)
        if portfolio is None:
            raise NotFoundError(f"Tutor {tutor_id} has no portfolio", details={"tutor_id": tutor_id})
        return portfolio

    async def upsert_tutor_portfolio(self, actor_id: str, tutor_id: str, fields: Dict[str, Any]) -> TutorPortfolio:
        return await self.directory.upsert_portfolio(actor_id, tutor_id, fields)

    # ==================== Sessions ====================

    async def create_session(
        self,
        student: Identity,
        tutor_id: str,
        subject: str,
        scheduled_at: datetime,
        grade_level: Optional[str] = None,
        location: Optional[str] = None,
        price_per_hour: Optional[float] = None,
    ) -> SessionBooking:
        """
        Request a session with a tutor. The new session starts as ``requested``.

        A tutor without a portfolio can still be booked; the booking then
        carries a warning instead of failing.

        Raises:
            AuthorizationError: acting identity is not a student
            ValidationError: bad input (same ids, empty subject, past or naive time, negative price)
            NotFoundError: student or tutor identity does not exist
        """
        if student.role is not Role.STUDENT:
            raise AuthorizationError("Only students can request sessions", details={"actor_id": student.id})
        if student.id == tutor_id:
            raise ValidationError("Student and tutor must be different people", field="tutor_id")
        subject = (subject or "").strip()
        if not subject:
            raise ValidationError("Subject is required", field="subject")
        if scheduled_at.tzinfo is None:
            raise ValidationError("scheduled_at must include a timezone", field="scheduled_at")
        if scheduled_at <= self.clock():
            raise ValidationError("scheduled_at must be in the future", field="scheduled_at")
        if price_per_hour is not None and price_per_hour < 0:
            raise ValidationError("Price per hour cannot be negative", field="price_per_hour")

        identities = await self.directory.get_identities([student.id, tutor_id])
        if student.id not in identities:
            raise NotFoundError(f"Student {student.id} not found", details={"student_id": student.id})
        tutor = identities.get(tutor_id)
        if tutor is None or tutor.role is not Role.TUTOR:
            raise NotFoundError(f"Tutor {tutor_id} not found", details={"tutor_id": tutor_id})

        warnings = []
        portfolio = await self.directory.get_portfolio(tutor_id)
        if portfolio is None:
            warning = f"Tutor {tutor_id} has not published a portfolio yet"
            logger.warning(f"⚠️ [TutorMarketplace] {warning}; booking anyway")
            warnings.append(warning)

        if price_per_hour is None:
            price_per_hour = portfolio.hourly_rate if portfolio else 0.0

        draft = TutoringSession(
            id="",
            student_id=student.id,
            tutor_id=tutor_id,
            subject=subject,
            scheduled_at=scheduled_at,
            status=SessionStatus.REQUESTED,
            grade_level=grade_level or None,
            location=location or self.config.default_session_location,
            price_per_hour=float(price_per_hour),
        )
        stored = await self.store.insert_session(draft)
        return SessionBooking(session=stored, warnings=warnings)

    async def get_session(self, session_id: str, actor_id: str) -> TutoringSession:
        session = await self.store.get_session(session_id)
        authorize_party(session, actor_id)
        return session

    async def list_sessions(self, identity_id: str, status: Optional[SessionStatus] = None) -> List[TutoringSession]:
        return await self.store.list_sessions(identity_id, status=status)

    async def transition_session(
        self,
        session_id: str,
        actor_id: str,
        target: Union[SessionStatus, str],
    ) -> TutoringSession:
        """
        Move a session to ``target`` on behalf of ``actor_id``.

        The write is conditional on the status read here, so a concurrent
        change by the other party surfaces as ConflictError.
        """
        target = SessionStatus.parse(target)
        session = await self.store.get_session(session_id)
        role = check_transition(session, actor_id, target, self.clock())

        updated = await self.store.compare_and_set(session_id, session.status, {"status": target.value})
        logger.info(
            f"✅ [TutorMarketplace] Session {session_id}: {session.status.value} -> {target.value} by {role.value}"
        )
        return updated

    async def set_payment_option(
        self,
        session_id: str,
        student_id: str,
        option: Union[PaymentOption, str],
    ) -> TutoringSession:
        return await self.payments.set_payment_option(session_id, option, student_id)
