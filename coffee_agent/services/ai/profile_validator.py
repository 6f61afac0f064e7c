"""Sanitization and validation of model-produced tasting profiles."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from coffee_agent.core.enums import TastingAttributeName
from coffee_agent.core.errors import ValidationFailedError
from coffee_agent.core.schema import TastingProfile

logger = logging.getLogger(__name__)


@dataclass
class ProfileValidationResult:
    """Outcome of validating one candidate profile."""

    success: bool
    profile: TastingProfile | None = None
    errors: list[str] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _sanitize_attribute(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    result = dict(data)

    tag = result.get("tag")
    if isinstance(tag, str):
        result["tag"] = tag.strip().lower()

    color = result.get("color")
    if isinstance(color, str):
        color = color.strip().lower()
        if color and not color.startswith("#"):
            color = f"#{color}"
        result["color"] = color

    score = result.get("score")
    if isinstance(score, float) and math.isfinite(score):
        result["score"] = _round_half_up(score)
    elif isinstance(score, str):
        try:
            result["score"] = _round_half_up(float(score.strip()))
        except ValueError:
            pass

    return result


def sanitize_profile(data: Any) -> Any:
    """
    Normalize a raw profile before validation.

    Tags are trimmed and lowercased, colors lowercased with a leading '#',
    and scores rounded to the nearest integer. Unknown shapes pass through
    untouched so validation can reject them.
    """
    if not isinstance(data, dict):
        return data
    result = dict(data)
    for name in TastingAttributeName:
        if name.value in result:
            result[name.value] = _sanitize_attribute(result[name.value])
    return result


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Render pydantic errors as 'path.to.field: message' strings."""
    errors = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"])
        errors.append(f"{path}: {error['msg']}")
    return errors


def require_profile(data: Any) -> TastingProfile:
    """
    Sanitize and validate a candidate tasting profile.

    Any missing or malformed attribute rejects the whole profile.

    Raises:
        ValidationFailedError: With one "path: message" string per problem.
    """
    if isinstance(data, TastingProfile):
        data = data.model_dump()
    if not isinstance(data, dict):
        raise ValidationFailedError(["profile: expected an object"])

    try:
        return TastingProfile.model_validate(sanitize_profile(data))
    except ValidationError as e:
        raise ValidationFailedError(format_validation_errors(e)) from e


def validate_profile(data: Any) -> ProfileValidationResult:
    """Non-raising form of require_profile."""
    try:
        profile = require_profile(data)
    except ValidationFailedError as e:
        logger.warning(f"Tasting profile rejected: {'; '.join(e.errors)}")
        return ProfileValidationResult(success=False, errors=e.errors)
    return ProfileValidationResult(success=True, profile=profile)
