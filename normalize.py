"""
normalize.py
Text normalization for fuzzy name matching, tolerant number parsing, and
display formatters that never print "nan".
"""

import math
import re

PLACEHOLDER = "—"

_ARTICLE   = re.compile(r"^the\s+")
_NOT_ALNUM = re.compile(r"[^a-z0-9 ]")
_NOT_NUMERIC_SAFE = re.compile(r"[^a-z0-9 %.\-]")
_SPACES    = re.compile(r"\s+")


# ── Text ──────────────────────────────────────────────────────────────────────

def normalize_text(s, numeric: bool = False) -> str:
    """
    Lowercase, trimmed, punctuation-free form of `s` used for all matching.
    "The Stormcast Eternals" and "stormcast  eternals!" both become
    "stormcast eternals". With numeric=True, `%`, `.` and `-` survive.
    """
    if s is None:
        return ""
    s = str(s).replace("\u00a0", " ").strip().lower()
    s = _ARTICLE.sub("", s)
    s = (_NOT_NUMERIC_SAFE if numeric else _NOT_ALNUM).sub(" ", s)
    return _SPACES.sub(" ", s).strip()


def match_rank(query: str, candidate: str) -> int | None:
    """0 = candidate starts with query, 1 = contains it, None = no match."""
    q = normalize_text(query)
    c = normalize_text(candidate)
    if not c:
        return None
    if c.startswith(q):
        return 0
    if q in c:
        return 1
    return None


def matches(query: str, candidate: str) -> bool:
    return match_rank(query, candidate) is not None


# ── Numbers ───────────────────────────────────────────────────────────────────

def parse_numeric(value) -> float | None:
    """'52.3%' -> 52.3, '1,204' -> 1204.0, anything unparsable -> None."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return f if math.isfinite(f) else None
    s = str(value).strip().replace(",", "")
    if s.endswith("%"):
        s = s[:-1].strip()
    if not s:
        return None
    try:
        f = float(s)
    except ValueError:
        return None
    return f if math.isfinite(f) else None


def _missing(v) -> bool:
    return v is None or (isinstance(v, float) and math.isnan(v))


def round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


# ── Formatters ────────────────────────────────────────────────────────────────

def fmt_pct(v) -> str:
    if _missing(v):
        return PLACEHOLDER
    return f"{fmt_one_decimal(v)}%"


def fmt_pp(v) -> str:
    """Percentage-point delta, signed and rounded: +10pp, -7pp."""
    if _missing(v):
        return PLACEHOLDER
    d = round_half_up(v)
    sign = "+" if d >= 0 else ""
    return f"{sign}{d}pp"


def fmt_int(v) -> str:
    if _missing(v):
        return PLACEHOLDER
    return f"{round_half_up(v):,}"


def fmt_one_decimal(v) -> str:
    """12.0 -> '12', 12.34 -> '12.3'."""
    if _missing(v):
        return PLACEHOLDER
    f = round(float(v), 1)
    if f == int(f):
        return str(int(f))
    return f"{f:.1f}"
