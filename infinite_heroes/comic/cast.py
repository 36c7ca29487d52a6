"""
Cast registry: the three fixed roles of a comic.
"""
from typing import Any, Mapping, Union

from pydantic import ValidationError as PydanticValidationError

from infinite_heroes.core.errors import ValidationError
from infinite_heroes.schemas.comic import Cast, CastMember, Role

CastInput = Union[CastMember, Mapping[str, Any]]

REQUIRED_FIELDS = ("name", "description", "portrait_image")


def _as_member(value: CastInput, role: Role) -> CastMember:
    if value is None:
        raise ValidationError(f"Missing cast member for role '{role.value}'")

    if isinstance(value, CastMember):
        data = value.model_dump()
    elif isinstance(value, Mapping):
        data = dict(value)
        data.setdefault("role", role)
    else:
        raise ValidationError(f"Invalid cast member for role '{role.value}'")

    missing = [f for f in REQUIRED_FIELDS if not str(data.get(f) or "").strip()]
    if missing:
        raise ValidationError(
            f"Cast member for role '{role.value}' is missing: {', '.join(missing)}"
        )

    try:
        member = CastMember.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid cast member for role '{role.value}': {e}") from e

    if member.role != role:
        raise ValidationError(
            f"Cast member '{member.name}' has role '{member.role.value}', expected '{role.value}'"
        )
    return member


def set_cast(hero: CastInput, costar: CastInput, villain: CastInput) -> Cast:
    """Validate the three members and freeze them into a Cast."""
    return Cast(
        hero=_as_member(hero, Role.HERO),
        costar=_as_member(costar, Role.COSTAR),
        villain=_as_member(villain, Role.VILLAIN),
    )


def ensure_cast(cast: Union[Cast, Mapping[str, Any]]) -> Cast:
    """Accept an existing Cast or a {hero, costar, villain} mapping."""
    if isinstance(cast, Cast):
        return set_cast(cast.hero, cast.costar, cast.villain)
    if isinstance(cast, Mapping):
        return set_cast(cast.get("hero"), cast.get("costar"), cast.get("villain"))
    raise ValidationError("Cast must provide hero, costar and villain")
