"""
Shared fixtures: an in-memory stand-in for the Supabase client surface the
marketplace uses, a controllable clock, and seeded identities.
"""

import copy
import itertools
import os
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from supabase import AuthApiError, AuthError

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(project_root, "tutor_marketplace", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))

from tutor_marketplace.config import MarketplaceConfig
from tutor_marketplace.marketplace import TutorMarketplace
from tutor_marketplace.models import Identity, Role


STUDENT_ID = "student-1"
OTHER_STUDENT_ID = "student-2"
TUTOR_ID = "tutor-1"
OTHER_TUTOR_ID = "tutor-2"
NO_PORTFOLIO_TUTOR_ID = "tutor-3"


class FakeQuery:
    """Chainable query recording filters, evaluated on execute()."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.action = "select"
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.order_by = None
        self.limit_to = None

    # -- actions --
    def select(self, columns="*"):
        self.action = "select"
        return self

    def insert(self, row):
        self.action, self.payload = "insert", dict(row)
        return self

    def update(self, patch):
        self.action, self.payload = "update", dict(patch)
        return self

    def upsert(self, row, on_conflict=None):
        self.action, self.payload, self.on_conflict = "upsert", dict(row), on_conflict
        return self

    # -- filters --
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def is_(self, column, value):
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def or_(self, expression):
        clauses = []
        for clause in expression.split(","):
            column, op, value = clause.split(".", 2)
            assert op == "eq"
            clauses.append((column, value))
        self.filters.append(lambda row: any(row.get(c) == v for c, v in clauses))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.limit_to = count
        return self

    # -- execution --
    def _matching(self, rows):
        return [row for row in rows if all(f(row) for f in self.filters)]

    def execute(self):
        self.client.calls.append((self.table, self.action))
        failure = self.client.failures.pop((self.table, self.action), None)
        if failure is not None:
            raise failure

        rows = self.client.tables.setdefault(self.table, [])

        if self.action == "select":
            result = self._matching(rows)
            if self.order_by:
                column, desc = self.order_by
                result = sorted(result, key=lambda row: row.get(column) or "", reverse=desc)
            if self.limit_to is not None:
                result = result[:self.limit_to]
            return SimpleNamespace(data=copy.deepcopy(result))

        if self.action == "insert":
            row = dict(self.payload)
            row.setdefault("id", f"{self.table}-{next(self.client.ids)}")
            rows.append(row)
            return SimpleNamespace(data=[copy.deepcopy(row)])

        if self.action == "update":
            matched = self._matching(rows)
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=copy.deepcopy(matched))

        if self.action == "upsert":
            key = self.on_conflict or "id"
            for row in rows:
                if row.get(key) == self.payload.get(key):
                    row.update(self.payload)
                    row["updated_at"] = "2030-01-01T00:00:00+00:00"
                    return SimpleNamespace(data=[copy.deepcopy(row)])
            row = dict(self.payload)
            row.setdefault("id", f"{self.table}-{next(self.client.ids)}")
            rows.append(row)
            return SimpleNamespace(data=[copy.deepcopy(row)])

        raise AssertionError(f"unsupported action {self.action}")


class FakeAuthApiError(AuthApiError):
    def __init__(self, message, status=400, code=None):
        Exception.__init__(self, message)
        self.message = message
        self.status = status
        self.code = code
        self.name = "AuthApiError"


class FakeAuthUnreachableError(AuthError):
    """Auth failure with no API response behind it (connection refused, timeout)."""

    def __init__(self, message):
        Exception.__init__(self, message)
        self.message = message
        self.code = None
        self.name = "AuthRetryableError"


class FakeAuth:
    """Subset of the Supabase auth client."""

    def __init__(self, client):
        self.client = client
        self.users = {}
        self.tokens = {}
        self.current = None
        self.resent = []

    def add_user(self, user_id, email, password, confirmed=True, metadata=None):
        user = SimpleNamespace(
            id=user_id,
            email=email,
            user_metadata=metadata or {},
            email_confirmed_at="2024-01-01T00:00:00Z" if confirmed else None,
        )
        self.users[email] = (user, password)
        self.tokens[f"token-{user_id}"] = user
        return user

    def sign_in_with_password(self, credentials):
        entry = self.users.get(credentials["email"])
        if entry is None or entry[1] != credentials["password"]:
            raise FakeAuthApiError("Invalid login credentials", code="invalid_credentials")
        user, _ = entry
        if user.email_confirmed_at is None:
            raise FakeAuthApiError("Email not confirmed", code="email_not_confirmed")
        session = SimpleNamespace(access_token=f"token-{user.id}", refresh_token=f"refresh-{user.id}", user=user)
        self.current = session
        return SimpleNamespace(user=user, session=session)

    def sign_up(self, credentials):
        if credentials["email"] in self.users:
            raise FakeAuthApiError("User already registered", code="user_already_exists")
        metadata = credentials.get("options", {}).get("data", {})
        user_id = f"user-{next(self.client.ids)}"
        user = self.add_user(user_id, credentials["email"], credentials["password"], confirmed=False, metadata=metadata)
        # Database trigger creates the profile row from metadata
        self.client.tables.setdefault("profiles", []).append({
            "id": user_id,
            "first_name": metadata.get("first_name"),
            "last_name": metadata.get("last_name"),
            "role": metadata.get("role"),
            "created_at": "2030-01-01T00:00:00+00:00",
        })
        return SimpleNamespace(user=user, session=None)

    def sign_out(self):
        self.current = None

    def get_session(self):
        return self.current

    def get_user(self, token):
        user = self.tokens.get(token)
        if user is None:
            raise FakeAuthApiError("invalid JWT", status=401, code="bad_jwt")
        return SimpleNamespace(user=user)

    def resend(self, credentials):
        self.resent.append(credentials)


class FakeSupabase:
    """In-memory Supabase client: tables are lists of row dicts."""

    def __init__(self):
        self.tables = {}
        self.calls = []
        self.failures = {}
        self.ids = itertools.count(1)
        self.auth = FakeAuth(self)

    def table(self, name):
        return FakeQuery(self, name)

    def fail_next(self, table, action, exc):
        """Make the next ``action`` on ``table`` raise ``exc``."""
        self.failures[(table, action)] = exc

    def add_profile(self, identity_id, role, first_name, last_name, created_at):
        self.tables.setdefault("profiles", []).append({
            "id": identity_id,
            "first_name": first_name,
            "last_name": last_name,
            "role": role,
            "created_at": created_at,
        })

    def add_portfolio(self, tutor_id, **fields):
        row = {
            "id": f"portfolio-{tutor_id}",
            "tutor_id": tutor_id,
            "subjects": ["Mathematics"],
            "experience": None,
            "hourly_rate": 500,
            "location": None,
            "grade_level": None,
            "availability_start": "09:00:00",
            "availability_end": "17:00:00",
        }
        row.update(fields)
        self.tables.setdefault("tutor_portfolios", []).append(row)
        return row


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def supabase():
    client = FakeSupabase()
    client.add_profile(STUDENT_ID, "student", "Sita", "Karki", "2030-01-01T00:00:01+00:00")
    client.add_profile(OTHER_STUDENT_ID, "student", "Hari", "Thapa", "2030-01-01T00:00:02+00:00")
    client.add_profile(TUTOR_ID, "tutor", "Aryan", "Adhikari", "2030-01-01T00:00:03+00:00")
    client.add_profile(OTHER_TUTOR_ID, "tutor", "Rajesh", "Sunar", "2030-01-01T00:00:04+00:00")
    client.add_profile(NO_PORTFOLIO_TUTOR_ID, "tutor", "Shreeya", "Malla", "2030-01-01T00:00:05+00:00")
    client.add_portfolio(TUTOR_ID, subjects=["Programming", "Mathematics"], hourly_rate=550,
                         location="Mahalaxmi, Lalitpur", grade_level="High School")
    client.add_portfolio(OTHER_TUTOR_ID, subjects=["Mathematics", "Physics"], hourly_rate=600,
                         location="Dillibazar, Kathmandu", grade_level="High School")
    return client


@pytest.fixture
def config():
    return MarketplaceConfig(min_hourly_rate=10.0, default_session_location="Online")


@pytest.fixture
def marketplace(supabase, config, clock):
    return TutorMarketplace(supabase, config=config, clock=clock)


@pytest.fixture
def student():
    return Identity(id=STUDENT_ID, role=Role.STUDENT, first_name="Sita", last_name="Karki")


@pytest.fixture
def other_student():
    return Identity(id=OTHER_STUDENT_ID, role=Role.STUDENT)
