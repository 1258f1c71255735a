"""Parsing of free-text ``key: value`` forms used in node configuration."""


def parse_form_string(text: str | None) -> dict[str, str]:
    """
    Parse one ``key: value`` pair per line into a dict.

    Only the first colon splits, so ``"time: 10:30:00"`` keeps its value
    intact. Lines without a colon, or with an empty key or value after
    trimming, are skipped.

    Example:
        >>> parse_form_string("name: John\\ninvalid\\nemail: john@example.com")
        {'name': 'John', 'email': 'john@example.com'}
    """
    result: dict[str, str] = {}
    if not text:
        return result
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if key and value:
            result[key] = value
    return result
