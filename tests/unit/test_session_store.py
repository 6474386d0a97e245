"""
Unit Tests for the Session Store

Tests row conversion, conditional updates and store error translation.
"""

from datetime import datetime, timedelta, timezone

import pytest
from postgrest.exceptions import APIError

from conftest import STUDENT_ID, TUTOR_ID
from tutor_marketplace.config import MarketplaceConfig
from tutor_marketplace.errors import ConflictError, NotFoundError, TransportError, ValidationError
from tutor_marketplace.marketplace import TutorMarketplace
from tutor_marketplace.models import PaymentOption, SessionStatus, TutoringSession
from tutor_marketplace.session_store import SessionStore


@pytest.fixture
def store(supabase, clock):
    return SessionStore(supabase, clock=clock)


def draft(scheduled_at, student_id=STUDENT_ID, subject="Mathematics"):
    return TutoringSession(
        id="",
        student_id=student_id,
        tutor_id=TUTOR_ID,
        subject=subject,
        scheduled_at=scheduled_at,
        price_per_hour=550,
    )


class TestSessionStore:

    @pytest.mark.asyncio
    async def test_insert_and_reload(self, store, clock):
        scheduled = clock.now + timedelta(days=2)
        stored = await store.insert_session(draft(scheduled))

        assert stored.id
        assert stored.status is SessionStatus.REQUESTED
        assert stored.scheduled_at == scheduled
        assert stored.created_at == clock.now
        assert await store.get_session(stored.id) == stored

    @pytest.mark.asyncio
    async def test_missing_session_is_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.get_session("nope")

    @pytest.mark.asyncio
    async def test_compare_and_set_applies_when_status_matches(self, store, clock):
        stored = await store.insert_session(draft(clock.now + timedelta(days=1)))
        clock.advance(minutes=5)

        updated = await store.compare_and_set(stored.id, SessionStatus.REQUESTED, {"status": "accepted"})

        assert updated.status is SessionStatus.ACCEPTED
        assert updated.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_compare_and_set_rejects_stale_status(self, store, clock):
        stored = await store.insert_session(draft(clock.now + timedelta(days=1)))
        await store.compare_and_set(stored.id, SessionStatus.REQUESTED, {"status": "cancelled"})

        with pytest.raises(ConflictError):
            await store.compare_and_set(stored.id, SessionStatus.REQUESTED, {"status": "accepted"})
        assert (await store.get_session(stored.id)).status is SessionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_compare_and_set_requires_unset_payment(self, store, clock):
        stored = await store.insert_session(draft(clock.now + timedelta(days=1)))
        await store.compare_and_set(stored.id, SessionStatus.REQUESTED, {"status": "accepted"})
        await store.compare_and_set(stored.id, SessionStatus.ACCEPTED, {"payment_option": "50% upfront"},
                                    require_payment_unset=True)

        with pytest.raises(ConflictError):
            await store.compare_and_set(stored.id, SessionStatus.ACCEPTED, {"payment_option": "100% upfront"},
                                        require_payment_unset=True)
        assert (await store.get_session(stored.id)).payment_option is PaymentOption.HALF_UPFRONT

    @pytest.mark.asyncio
    async def test_list_sessions_for_either_party_newest_first(self, store, clock):
        early = await store.insert_session(draft(clock.now + timedelta(days=1)))
        late = await store.insert_session(draft(clock.now + timedelta(days=5), subject="Programming"))
        await store.insert_session(draft(clock.now + timedelta(days=3), student_id="student-2"))

        as_student = await store.list_sessions(STUDENT_ID)
        as_tutor = await store.list_sessions(TUTOR_ID)

        assert [s.id for s in as_student] == [late.id, early.id]
        assert len(as_tutor) == 3

    @pytest.mark.asyncio
    async def test_list_sessions_by_status(self, store, clock):
        first = await store.insert_session(draft(clock.now + timedelta(days=1)))
        await store.insert_session(draft(clock.now + timedelta(days=2)))
        await store.compare_and_set(first.id, SessionStatus.REQUESTED, {"status": "accepted"})

        accepted = await store.list_sessions(STUDENT_ID, status=SessionStatus.ACCEPTED)
        assert [s.id for s in accepted] == [first.id]

    @pytest.mark.asyncio
    async def test_row_defaults(self, store):
        session = store.dict_to_session({
            "id": "s-9",
            "student_id": STUDENT_ID,
            "tutor_id": TUTOR_ID,
            "subject": "Physics",
            "scheduled_at": "2030-06-01T10:00:00Z",
            "status": "requested",
            "location": None,
            "price_per_hour": None,
            "payment_option": None,
        })
        assert session.location == "Online"
        assert session.price_per_hour == 0.0
        assert session.scheduled_at == datetime(2030, 6, 1, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_missing_location_uses_configured_default(self, supabase, clock):
        store = SessionStore(supabase, clock=clock, default_location="Kathmandu")
        supabase.tables.setdefault("sessions", []).append({
            "id": "s-10",
            "student_id": STUDENT_ID,
            "tutor_id": TUTOR_ID,
            "subject": "Physics",
            "scheduled_at": "2030-06-01T10:00:00+00:00",
            "status": "requested",
        })
        assert (await store.get_session("s-10")).location == "Kathmandu"

    @pytest.mark.asyncio
    async def test_marketplace_store_follows_config(self, supabase, clock):
        marketplace = TutorMarketplace(
            supabase, config=MarketplaceConfig(default_session_location="Lalitpur"), clock=clock
        )
        assert marketplace.store.default_location == "Lalitpur"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("identity_id", [
        "",
        "x,tutor_id.neq.none",
        "x)",
        "student-1.eq",
    ])
    async def test_list_sessions_rejects_filter_syntax_in_id(self, store, supabase, identity_id):
        supabase.calls.clear()
        with pytest.raises(ValidationError) as exc_info:
            await store.list_sessions(identity_id)
        assert exc_info.value.field == "identity_id"
        assert supabase.calls == []


class TestStoreErrors:

    @pytest.mark.asyncio
    async def test_foreign_key_violation_is_not_found(self, store, supabase, clock):
        supabase.fail_next("sessions", "insert", APIError({"code": "23503", "message": "fk_tutor"}))
        with pytest.raises(NotFoundError):
            await store.insert_session(draft(clock.now + timedelta(days=1)))

    @pytest.mark.asyncio
    async def test_unique_violation_is_conflict(self, store, supabase, clock):
        supabase.fail_next("sessions", "insert", APIError({"code": "23505", "message": "duplicate key"}))
        with pytest.raises(ConflictError):
            await store.insert_session(draft(clock.now + timedelta(days=1)))

    @pytest.mark.asyncio
    async def test_other_api_errors_are_transport_errors(self, store, supabase):
        supabase.fail_next("sessions", "select", APIError({"code": "57014", "message": "statement timeout"}))
        with pytest.raises(TransportError) as exc_info:
            await store.get_session("any")
        assert exc_info.value.details["store_code"] == "57014"

    @pytest.mark.asyncio
    async def test_failed_update_leaves_record_unchanged(self, store, supabase, clock):
        stored = await store.insert_session(draft(clock.now + timedelta(days=1)))
        supabase.fail_next("sessions", "update", TimeoutError("read timed out"))

        with pytest.raises(TransportError):
            await store.compare_and_set(stored.id, SessionStatus.REQUESTED, {"status": "accepted"})
        assert (await store.get_session(stored.id)).status is SessionStatus.REQUESTED
