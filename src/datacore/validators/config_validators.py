def to_uppercase(value: str | None) -> str | None:
    """
    Converts a string to uppercase if it's not None.
    """
    if value is None:
        return None
    return value.upper()


def to_lowercase(value: str | None) -> str | None:
    """
    Converts a string to lowercase if it's not None.
    """
    if value is None:
        return None
    return value.lower()


def strip_or_none(value: str | None) -> str | None:
    """
    Trim surrounding whitespace; blank strings become None.

    Environment files often carry `DB_HOST=` with nothing after it, which
    should mean "not configured" rather than an empty host name.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    value = value.strip()
    return value or None
