"""
Tutor search filtering.

Pure functions over an already-fetched tutor collection; no store access.
"""

from typing import Iterable, List, Optional

from tutor_marketplace.models import SearchCriteria, TutorProfile


def _matches(tutor: TutorProfile, criteria: SearchCriteria) -> bool:
    if criteria.subject and criteria.subject not in tutor.subjects:
        return False
    if criteria.grade_level and tutor.grade_level != criteria.grade_level:
        return False
    if criteria.location and criteria.location.lower() not in (tutor.location or "").lower():
        return False
    if criteria.max_price is not None and tutor.hourly_rate > criteria.max_price:
        return False
    return True


def filter_tutors(tutors: Iterable[TutorProfile], criteria: Optional[SearchCriteria] = None) -> List[TutorProfile]:
    """
    Return the tutors matching every populated criterion, in input order.

    Subject and grade level match exactly (case-sensitive); location is a
    case-insensitive substring match; max_price is an inclusive upper bound on
    the hourly rate.
    """
    tutors = list(tutors)
    if criteria is None or criteria.is_empty():
        return tutors
    return [tutor for tutor in tutors if _matches(tutor, criteria)]
