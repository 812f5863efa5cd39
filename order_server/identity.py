"""
Normalized user identity extracted from a provider userinfo payload.
Providers disagree on claim names, so each field is looked up through a fallback chain.
The chain only moves on when a key is absent; a present key with an unusable value ends it.
"""
from dataclasses import asdict, dataclass
from typing import Any

# Lookup order; a tuple is a nested path
_ID_KEYS = ("sub", "id", ("user", "id"))
_NAME_KEYS = ("name", "preferred_username", "login")

_MISSING = object()


@dataclass(frozen=True)
class Identity:
    id: str
    name: str | None = None
    email: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _lookup(profile: dict, key) -> Any:
    """Value at key (or nested path), or _MISSING when the key is absent."""
    if isinstance(key, str):
        key = (key,)
    value: Any = profile
    for part in key:
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _first_present(profile: dict, keys) -> Any:
    for key in keys:
        value = _lookup(profile, key)
        if value is not _MISSING:
            return value
    return None


def _as_id(value: Any) -> str | None:
    # bool is an int subclass; true/false is never a subject
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def extract_identity(profile: Any) -> Identity | None:
    """
    Map a userinfo payload to an Identity.
    id: first present of sub, id, user.id; must be a string or number.
    email: plain string. name: first present of name, preferred_username, login; string only.
    Returns None for null/non-object/empty payloads or when the chosen id is missing or unusable.
    """
    if not isinstance(profile, dict) or not profile:
        return None

    subject = _as_id(_first_present(profile, _ID_KEYS))
    if subject is None:
        return None

    name = _first_present(profile, _NAME_KEYS)
    email = profile.get("email")
    return Identity(
        id=subject,
        name=name if isinstance(name, str) else None,
        email=email if isinstance(email, str) else None,
    )


def identity_from_claims(claims: dict) -> Identity | None:
    """Identity of a verified access token: sub, email, and the username claim (Cognito or OIDC)."""
    subject = _as_id(claims.get("sub"))
    if subject is None:
        return None
    username = claims.get("cognito:username", claims.get("preferred_username"))
    email = claims.get("email")
    return Identity(
        id=subject,
        name=username if isinstance(username, str) else None,
        email=email if isinstance(email, str) else None,
    )
