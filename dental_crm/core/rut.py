"""
Chilean RUT (Rol Único Tributario) helpers.

A RUT is a numeric body followed by a check digit (0-9 or K). Clients are
stored with the canonical ``<body>-<DV>`` form produced by normalize_rut;
dispatch spreadsheets are matched with rut_match_key, which is looser.
"""

from __future__ import annotations

import re

_NON_RUT_CHARS = re.compile(r"[^0-9kK]")


# PUBLIC_INTERFACE
def normalize_rut(raw: str | None) -> str:
    """
    Normalize a RUT to ``<body>-<DV>``.

    Every character that is not a digit or ``k``/``K`` is dropped. The last
    remaining character is the check digit (upper-cased). Inputs shorter than
    two characters after cleaning are returned as cleaned.

    Examples:
        "76.111.111-1" -> "76111111-1"
        "12345678k"    -> "12345678-K"
    """
    clean = _NON_RUT_CHARS.sub("", raw or "")
    if len(clean) < 2:
        return clean
    body = clean[:-1]
    dv = clean[-1].upper()
    return f"{body}-{dv}"


# PUBLIC_INTERFACE
def rut_match_key(raw: object) -> str:
    """Key used to match dispatch rows against clients: no dots, no hyphens, upper-case."""
    return str(raw if raw is not None else "").replace(".", "").replace("-", "").upper()


# PUBLIC_INTERFACE
def compute_check_digit(body: str) -> str:
    """Compute the modulo-11 check digit for a numeric RUT body."""
    digits = [int(c) for c in reversed(body) if c.isdigit()]
    if not digits:
        raise ValueError("RUT body must contain digits")
    total = 0
    factor = 2
    for d in digits:
        total += d * factor
        factor = 2 if factor == 7 else factor + 1
    rest = 11 - (total % 11)
    if rest == 11:
        return "0"
    if rest == 10:
        return "K"
    return str(rest)


# PUBLIC_INTERFACE
def is_valid_rut(raw: str | None) -> bool:
    """Return True when the RUT's check digit matches its body."""
    normalized = normalize_rut(raw)
    if "-" not in normalized:
        return False
    body, dv = normalized.split("-", 1)
    if not body.isdigit():
        return False
    return compute_check_digit(body) == dv
