"""Free-text normalization for anything that ends up inside a prompt."""

import re

from arvi.core.errors import ValidationError

_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_user_input(raw, *, field: str = "input") -> str:
    """Trim, collapse internal whitespace and lowercase.

    Raises ValidationError for non-string input.
    """
    if not isinstance(raw, str):
        raise ValidationError(
            f"{field} must be a string",
            details={"field": field, "received": type(raw).__name__},
        )
    return _WHITESPACE_RE.sub(" ", raw.strip()).lower()


def sanitize_mapping(data: dict, *, field: str = "test_data") -> dict:
    """Sanitize every string value of a flat answers mapping.

    Keys keep their casing and are only trimmed; two keys that trim to the
    same name are rejected. Non-string scalars (numbers, booleans) pass
    through; nested containers are rejected.
    """
    if not isinstance(data, dict):
        raise ValidationError(f"{field} must be an object", details={"field": field})
    cleaned = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise ValidationError(f"{field} keys must be strings", details={"field": field})
        name = _WHITESPACE_RE.sub(" ", key.strip())
        if name in cleaned:
            raise ValidationError(
                f"{field}.{name} appears more than once",
                details={"field": f"{field}.{name}"},
            )
        if isinstance(value, str):
            cleaned[name] = sanitize_user_input(value, field=f"{field}.{name}")
        elif isinstance(value, (bool, int, float)) or value is None:
            cleaned[name] = value
        else:
            raise ValidationError(
                f"{field}.{name} must be a string or number",
                details={"field": f"{field}.{name}"},
            )
    return cleaned
