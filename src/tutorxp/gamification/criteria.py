"""Achievement criteria: typed variants parsed from the catalog blob.

Catalog rows store criteria as a JSON object such as
``{"CriteriaType": "session_count", "RequiredCount": 5}``. Key names are
matched case-insensitively and ``RequiredCount`` may be a numeric string.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from tutorxp.db.models import Achievement
from tutorxp.gamification.exceptions import CriteriaError

logger = logging.getLogger(__name__)


class _BaseCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    required_count: int = 0
    additional_data: str | None = None


# --- Attendance ---


class AccountCreated(_BaseCriteria):
    criteria_type: Literal["account_created"] = "account_created"


class EmailVerified(_BaseCriteria):
    criteria_type: Literal["email_verified"] = "email_verified"


class SessionCount(_BaseCriteria):
    criteria_type: Literal["session_count"] = "session_count"


class LoginStreak(_BaseCriteria):
    criteria_type: Literal["login_streak"] = "login_streak"


# --- Progress ---


class ReachLevel(_BaseCriteria):
    criteria_type: Literal["reach_level"] = "reach_level"


class ModuleSessions(_BaseCriteria):
    criteria_type: Literal["module_sessions"] = "module_sessions"


class UniqueModules(_BaseCriteria):
    criteria_type: Literal["unique_modules"] = "unique_modules"


# --- Mastery ---


class FiveStarRating(_BaseCriteria):
    criteria_type: Literal["five_star_rating"] = "five_star_rating"


class FiveStarRatings(_BaseCriteria):
    criteria_type: Literal["five_star_ratings"] = "five_star_ratings"


class HighRatingAverage(_BaseCriteria):
    """Mean review rating >= required_count (a 1-5 scale reusing the count field)."""

    criteria_type: Literal["high_rating_average"] = "high_rating_average"


# --- Social ---


class UniqueStudents(_BaseCriteria):
    criteria_type: Literal["unique_students"] = "unique_students"


class QuestionsAsked(_BaseCriteria):
    criteria_type: Literal["questions_asked"] = "questions_asked"


class JoinStudyGroup(_BaseCriteria):
    criteria_type: Literal["join_study_group"] = "join_study_group"


class BoardPosts(_BaseCriteria):
    criteria_type: Literal["board_posts"] = "board_posts"


class UnsupportedCriteria(_BaseCriteria):
    """Well-formed blob whose type this engine does not know. Never satisfied."""

    criteria_type: str


_KNOWN_MODELS = (
    AccountCreated,
    EmailVerified,
    SessionCount,
    LoginStreak,
    ReachLevel,
    ModuleSessions,
    UniqueModules,
    FiveStarRating,
    FiveStarRatings,
    HighRatingAverage,
    UniqueStudents,
    QuestionsAsked,
    JoinStudyGroup,
    BoardPosts,
)

KnownCriteria = Annotated[Union[_KNOWN_MODELS], Field(discriminator="criteria_type")]

Criteria = Union[KnownCriteria, UnsupportedCriteria]

_known_adapter: TypeAdapter[KnownCriteria] = TypeAdapter(KnownCriteria)

KNOWN_CRITERIA_TYPES: frozenset[str] = frozenset(
    model.model_fields["criteria_type"].default for model in _KNOWN_MODELS
)

# Blob key (lower-cased) -> model field
_FIELD_ALIASES = {
    "criteriatype": "criteria_type",
    "requiredcount": "required_count",
    "additionaldata": "additional_data",
}


def parse_criteria(raw: str | None) -> Criteria:
    """Parse a criteria blob into its typed variant.

    Raises CriteriaError if the blob is missing, not a JSON object, lacks a
    string CriteriaType, or carries a RequiredCount that is not an integer.
    """
    if raw is None or not raw.strip():
        raise CriteriaError("Criteria blob is empty")

    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CriteriaError(f"Criteria blob is not valid JSON: {exc}") from exc

    if not isinstance(decoded, dict):
        raise CriteriaError("Criteria blob must be a JSON object")

    fields: dict[str, object] = {}
    for key, value in decoded.items():
        field = _FIELD_ALIASES.get(str(key).lower())
        if field is not None:
            fields[field] = value

    criteria_type = fields.get("criteria_type")
    if not isinstance(criteria_type, str) or not criteria_type:
        raise CriteriaError("Criteria blob has no CriteriaType")

    try:
        if criteria_type in KNOWN_CRITERIA_TYPES:
            return _known_adapter.validate_python(fields)
        return UnsupportedCriteria.model_validate(fields)
    except ValidationError as exc:
        raise CriteriaError(f"Invalid criteria for {criteria_type!r}: {exc}") from exc


def load_criteria(achievement: Achievement) -> Criteria | None:
    """Parse an achievement's criteria, returning None when it is not evaluable."""
    try:
        return parse_criteria(achievement.criteria)
    except CriteriaError as exc:
        logger.warning("Achievement %s has unusable criteria: %s", achievement.id, exc)
        return None
