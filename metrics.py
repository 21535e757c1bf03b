"""
metrics.py
Derived numbers computed per query, never stored: usage ranking, impact
(with vs. without the unit), lift (unit vs. faction overall) and the Elo
dispersion label shown on faction cards.
"""

import math

import pandas as pd

from columns import Field
from normalize import normalize_text

STARTING_ELO = 400

# Elo dispersion thresholds (Elo points)
SKEW_GAP       = 10   # |average - median| at or above this is lopsided
SPECIALIST_GAP = 30   # average this far above STARTING_ELO = played by strong players

ELO_BLURBS = {
    "top-heavy":         "A few high-rated players pull the average above the median.",
    "inverted":          "The median sits above the average; a tail of weaker results drags it down.",
    "specialist-driven": "Mostly piloted by experienced, above-baseline players.",
    "even":              "Results are spread evenly across the player base.",
}

OVERALL = "overall"


def _num(v) -> float | None:
    if v is None:
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(f) else f


# ── Scalars ──────────────────────────────────────────────────────────────────

def impact(win_rate, win_rate_without) -> float | None:
    """Win % with the unit minus Win % without it. Positive = unit helps."""
    a, b = _num(win_rate), _num(win_rate_without)
    if a is None or b is None:
        return None
    return a - b


def lift(unit_win_rate, baseline_win_rate) -> float | None:
    """Unit Win % minus the faction's overall Win %."""
    a, b = _num(unit_win_rate), _num(baseline_win_rate)
    if a is None or b is None:
        return None
    return a - b


def elo_dispersion(avg_elo, median_elo, baseline: float = STARTING_ELO) -> str | None:
    avg, med = _num(avg_elo), _num(median_elo)
    if avg is None or med is None:
        return None
    skew = avg - med
    if skew >= SKEW_GAP:
        return "top-heavy"
    if skew <= -SKEW_GAP:
        return "inverted"
    if avg - baseline >= SPECIALIST_GAP:
        return "specialist-driven"
    return "even"


# ── Frames ───────────────────────────────────────────────────────────────────

def rank_usage(df: pd.DataFrame, ascending: bool = False) -> pd.DataFrame:
    """Sort by Used % (ties: more games first). Rows without Used % drop out."""
    used = Field.USED_PCT.value
    if used not in df.columns:
        return df.iloc[0:0]
    ranked = df.dropna(subset=[used])
    if Field.GAMES.value in ranked.columns:
        return ranked.sort_values([used, Field.GAMES.value], ascending=[ascending, False],
                                  kind="mergesort", na_position="last")
    return ranked.sort_values(used, ascending=ascending, kind="mergesort")


def with_impact(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    wr, wo = Field.WIN_RATE.value, Field.WIN_RATE_WITHOUT.value
    if wr in out.columns and wo in out.columns:
        out["impact"] = out[wr] - out[wo]
    else:
        out["impact"] = float("nan")
    return out


def with_lift(df: pd.DataFrame, baseline_win_rate) -> pd.DataFrame:
    out = df.copy()
    base = _num(baseline_win_rate)
    wr = Field.WIN_RATE.value
    if base is None or wr not in out.columns:
        out["lift"] = float("nan")
    else:
        out["lift"] = out[wr] - base
    return out


def rank_by(df: pd.DataFrame, column: str, ascending: bool = False) -> pd.DataFrame:
    if column not in df.columns:
        return df.iloc[0:0]
    return df.dropna(subset=[column]).sort_values(column, ascending=ascending, kind="mergesort")


def pulling_up(df: pd.DataFrame) -> pd.DataFrame:
    ranked = rank_by(df, "lift", ascending=False)
    return ranked[ranked["lift"] > 0]


def pulling_down(df: pd.DataFrame) -> pd.DataFrame:
    ranked = rank_by(df, "lift", ascending=True)
    return ranked[ranked["lift"] < 0]


def overall_row(faction_rows: pd.DataFrame):
    """The faction's 'Overall' formation row, else its first row, else None."""
    if faction_rows.empty:
        return None
    form = Field.FORMATION.value
    if form in faction_rows.columns:
        hit = faction_rows[faction_rows[form].map(normalize_text) == OVERALL]
        if not hit.empty:
            return hit.iloc[0]
    return faction_rows.iloc[0]
