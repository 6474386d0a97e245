"""
Tutor Directory

Reads tutor identities and portfolios from Supabase and manages each
tutor's portfolio with upsert-by-tutor semantics.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from tutor_marketplace.config import MarketplaceConfig
from tutor_marketplace.errors import (
    AuthorizationError,
    ValidationError,
    translate_store_error,
)
from tutor_marketplace.models import (
    Identity,
    Role,
    SearchCriteria,
    TutorPortfolio,
    TutorProfile,
    parse_timestamp,
)
from tutor_marketplace.search_filter import filter_tutors

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
PORTFOLIOS_TABLE = "tutor_portfolios"

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TutorDirectory:
    """
    Tutor portfolio storage and tutor listing.

    Portfolios are keyed by ``tutor_id``; an upsert replaces the whole
    editable part of the record, never merges it.
    """

    def __init__(self, supabase_client, config: Optional[MarketplaceConfig] = None):
        """
        Initialize TutorDirectory.

        Args:
            supabase_client: Supabase client instance
            config: Business settings (defaults to environment config)
        """
        self.supabase = supabase_client
        self.config = config or MarketplaceConfig.from_env()

    # ==================== Identities ====================

    async def get_identities(self, identity_ids: Iterable[str]) -> Dict[str, Identity]:
        """
        Load several identities from the profiles table in one query.

        Returns:
            Mapping of identity id to Identity; unknown ids are absent
        """
        ids = sorted(set(identity_ids))
        if not ids:
            return {}
        try:
            result = self.supabase.table(PROFILES_TABLE) \
                .select('id, first_name, last_name, role') \
                .in_('id', ids) \
                .execute()
        except Exception as e:
            raise translate_store_error(e, "Load profiles") from e

        identities = {}
        for row in result.data or []:
            try:
                role = Role.parse(row.get('role'))
            except ValidationError:
                logger.warning(f"⚠️ [TutorDirectory] Profile {row.get('id')} has unknown role {row.get('role')!r}, skipping")
                continue
            identities[row['id']] = Identity(
                id=row['id'],
                role=role,
                first_name=row.get('first_name'),
                last_name=row.get('last_name'),
            )
        return identities

    # ==================== Portfolios ====================

    async def get_portfolio(self, tutor_id: str) -> Optional[TutorPortfolio]:
        """
        Get a tutor's portfolio.

        Returns:
            TutorPortfolio or None if the tutor has not created one
        """
        try:
            result = self.supabase.table(PORTFOLIOS_TABLE) \
                .select('*') \
                .eq('tutor_id', tutor_id) \
                .limit(1) \
                .execute()
        except Exception as e:
            raise translate_store_error(e, "Load portfolio") from e

        if result.data:
            return self._dict_to_portfolio(result.data[0])
        return None

    async def upsert_portfolio(self, actor_id: str, tutor_id: str, fields: Dict[str, Any]) -> TutorPortfolio:
        """
        Create or fully replace the portfolio owned by ``tutor_id``.

        Args:
            actor_id: Identity performing the change (must equal tutor_id)
            tutor_id: Owner of the portfolio
            fields: Editable portfolio fields; omitted ones reset to defaults

        Returns:
            The stored TutorPortfolio

        Raises:
            AuthorizationError: actor_id is not tutor_id
            ValidationError: a field is missing or out of range (nothing written)
        """
        if actor_id != tutor_id:
            raise AuthorizationError(
                "Tutors may only edit their own portfolio",
                details={"actor_id": actor_id, "tutor_id": tutor_id},
            )

        candidate = self._validate_portfolio_fields(tutor_id, fields)

        existing = await self.get_portfolio(tutor_id)
        if existing and existing.editable_values() == candidate.editable_values():
            logger.info(f"✅ [TutorDirectory] Portfolio for tutor {tutor_id[:20]} unchanged, skipping write")
            return existing

        row = {"tutor_id": tutor_id, **candidate.editable_values()}
        try:
            result = self.supabase.table(PORTFOLIOS_TABLE) \
                .upsert(row, on_conflict='tutor_id') \
                .execute()
        except Exception as e:
            raise translate_store_error(e, "Save portfolio") from e

        stored = self._dict_to_portfolio(result.data[0]) if result.data else candidate
        action = "Updated" if existing else "Created"
        logger.info(f"✅ [TutorDirectory] {action} portfolio for tutor {tutor_id[:20]} (rate: {stored.hourly_rate})")
        return stored

    def _validate_portfolio_fields(self, tutor_id: str, fields: Dict[str, Any]) -> TutorPortfolio:
        """Check every editable field and build the candidate record."""
        unknown = set(fields) - set(TutorPortfolio.EDITABLE_FIELDS)
        if unknown:
            name = sorted(unknown)[0]
            raise ValidationError(f"Unknown portfolio field: {name}", field=name)

        subjects = fields.get("subjects") or []
        if isinstance(subjects, str):
            subjects = [subjects]
        subjects = [str(s).strip() for s in subjects if str(s).strip()]
        if not subjects:
            raise ValidationError("Select at least one subject", field="subjects")

        raw_rate = fields.get("hourly_rate")
        if raw_rate is None or isinstance(raw_rate, bool):
            raise ValidationError("Hourly rate is required", field="hourly_rate")
        try:
            hourly_rate = float(raw_rate)
        except (TypeError, ValueError):
            raise ValidationError(f"Hourly rate must be a number, got {raw_rate!r}", field="hourly_rate") from None
        if hourly_rate < self.config.min_hourly_rate:
            raise ValidationError(
                f"Hourly rate must be at least ${self.config.min_hourly_rate:g}",
                field="hourly_rate",
            )

        start = fields.get("availability_start") or "09:00"
        end = fields.get("availability_end") or "17:00"
        for name, value in (("availability_start", start), ("availability_end", end)):
            if not _TIME_OF_DAY.match(str(value)):
                raise ValidationError(f"{name} must be a time of day in HH:MM form", field=name)
        if start >= end:
            raise ValidationError("Availability must start before it ends", field="availability_end")

        return TutorPortfolio(
            tutor_id=tutor_id,
            subjects=subjects,
            experience=fields.get("experience") or None,
            hourly_rate=hourly_rate,
            location=fields.get("location") or None,
            grade_level=fields.get("grade_level") or None,
            availability_start=start,
            availability_end=end,
        )

    # ==================== Listing & search ====================

    async def list_tutor_profiles(self) -> List[TutorProfile]:
        """
        List every tutor that has a portfolio, in profile order.

        Identities and portfolios are read with one query each; portfolios
        are matched to tutors in memory rather than fetched per tutor.
        """
        try:
            tutors = self.supabase.table(PROFILES_TABLE) \
                .select('id, first_name, last_name, role') \
                .eq('role', Role.TUTOR.value) \
                .order('created_at') \
                .execute()
        except Exception as e:
            raise translate_store_error(e, "List tutors") from e

        tutor_rows = tutors.data or []
        if not tutor_rows:
            return []

        try:
            portfolios = self.supabase.table(PORTFOLIOS_TABLE) \
                .select('*') \
                .in_('tutor_id', [row['id'] for row in tutor_rows]) \
                .execute()
        except Exception as e:
            raise translate_store_error(e, "List portfolios") from e

        by_tutor = {row['tutor_id']: self._dict_to_portfolio(row) for row in portfolios.data or []}

        profiles = []
        for row in tutor_rows:
            portfolio = by_tutor.get(row['id'])
            if portfolio is None:
                continue
            name = " ".join(part for part in (row.get('first_name'), row.get('last_name')) if part)
            profiles.append(TutorProfile(
                id=row['id'],
                name=name or "Tutor",
                subjects=list(portfolio.subjects),
                grade_level=portfolio.grade_level,
                location=portfolio.location or "",
                hourly_rate=portfolio.hourly_rate,
                rating=portfolio.rating,
                image_url=row.get('avatar_url'),
            ))
        return profiles

    async def search_tutors(self, criteria: Optional[SearchCriteria] = None) -> List[TutorProfile]:
        """Fetch the directory and apply the search filter."""
        tutors = await self.list_tutor_profiles()
        matches = filter_tutors(tutors, criteria)
        logger.info(f"✅ [TutorDirectory] Found {len(matches)} of {len(tutors)} tutors")
        return matches

    def _dict_to_portfolio(self, data: Dict[str, Any]) -> TutorPortfolio:
        """Convert a tutor_portfolios row to TutorPortfolio."""
        return TutorPortfolio(
            id=data.get('id'),
            tutor_id=data['tutor_id'],
            subjects=list(data.get('subjects') or []),
            experience=data.get('experience'),
            hourly_rate=float(data.get('hourly_rate') or 0.0),
            location=data.get('location'),
            grade_level=data.get('grade_level'),
            # Postgres time columns come back as HH:MM:SS
            availability_start=(data.get('availability_start') or "09:00")[:5],
            availability_end=(data.get('availability_end') or "17:00")[:5],
            rating=float(data.get('rating') or 0.0),
            created_at=parse_timestamp(data.get('created_at')),
            updated_at=parse_timestamp(data.get('updated_at')),
        )
