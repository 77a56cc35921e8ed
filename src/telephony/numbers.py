from __future__ import annotations

import re

_DISALLOWED = re.compile(r"[^\d+]")


def to_e164(raw: str | None, country_code: str = "61") -> str | None:
    """Normalize a dialled or presented number to E.164 for one country.

    No length or numbering-plan validation is done; the only failure mode is
    input that carries no digits at all.
    """

    if not raw:
        return None

    number = _DISALLOWED.sub("", str(raw))
    if not any(ch.isdigit() for ch in number):
        return None

    if number.startswith("+"):
        return number
    if number.startswith(country_code):
        return "+" + number
    if number.startswith("0"):
        return f"+{country_code}{number[1:]}"
    return f"+{country_code}{number}"


def parse_allow_list(raw: str | None, country_code: str = "61") -> frozenset[str]:
    if not raw:
        return frozenset()
    entries = (to_e164(part.strip(), country_code) for part in raw.split(","))
    return frozenset(entry for entry in entries if entry)
