"""
analysis.py
Query engine behind every slash command. Handles the minimum-games filter,
faction/unit name picking, ranking and truncation, and returns structured
dicts that embeds.py turns into Discord embeds:

    {"type": ..., "query": ..., "records": [...], "meta": {...}}
    {"error_kind": ..., "message": ...}
"""

import logging
import math
from collections import Counter
from functools import wraps

import pandas as pd

import data_manager as dm
import metrics
from columns import Field
from errors import StatsBotError, Unauthorized
from normalize import match_rank, matches, normalize_text

log = logging.getLogger(__name__)

# ── Limits ───────────────────────────────────────────────────────────────────
DEFAULT_MIN_GAMES = 5
TOP_N             = 10
SUMMARY_N         = 3
DISCOVERY_N       = 25   # Discord autocomplete cap
SUGGESTION_N      = 5


# ── Result helpers ────────────────────────────────────────────────────────────

def _clean(v):
    if isinstance(v, float) and math.isnan(v):
        return None
    return v


def to_records(df: pd.DataFrame) -> list[dict]:
    """DataFrame rows as plain dicts; NaN becomes None."""
    return [{k: _clean(v) for k, v in r.items()} for r in df.to_dict("records")]


def row_to_record(row) -> dict | None:
    if row is None:
        return None
    return {k: _clean(v) for k, v in row.to_dict().items()}


def _meta(ds: dm.Dataset, min_games: int, **extra) -> dict:
    meta = {
        "dataset": ds.name,
        "dataset_timestamp": ds.as_of,
        "min_games": min_games,
    }
    meta.update(extra)
    return meta


def error_result(exc: StatsBotError) -> dict:
    return {"error_kind": exc.kind, "message": str(exc)}


def guarded(fn):
    """Turn data-layer exceptions into error dicts instead of raising."""
    @wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except StatsBotError as e:
            log.info("%s failed: %s (%s)", fn.__name__, e, e.kind)
            return error_result(e)
    return wrapper


# ── Pipeline ──────────────────────────────────────────────────────────────────

def apply_min_games(df: pd.DataFrame, min_games: int) -> pd.DataFrame:
    """Keep rows with games >= min_games. No games column means no rows."""
    if not min_games or min_games <= 0:
        return df
    col = Field.GAMES.value
    if col not in df.columns:
        return df.iloc[0:0]
    return df[df[col] >= min_games]


def name_mask(df: pd.DataFrame, field: Field, text: str) -> pd.Series:
    col = field.value
    if col not in df.columns:
        return pd.Series(False, index=df.index)
    q = normalize_text(text)
    return df[col].map(lambda v: bool(q) and matches(q, v)).astype(bool)


def query(df: pd.DataFrame, min_games: int = DEFAULT_MIN_GAMES, predicate=None,
          sort: str = None, ascending: bool = False, limit: int = TOP_N) -> pd.DataFrame:
    """
    min-games filter -> predicate -> sort -> truncate, always in that order.
    `predicate` takes the filtered frame and returns a boolean mask.
    """
    out = apply_min_games(df, min_games)
    if predicate is not None and not out.empty:
        out = out[predicate(out)]
    if sort is not None:
        out = metrics.rank_by(out, sort, ascending=ascending)
    if limit:
        out = out.head(limit)
    return out


def _most_common(values) -> str | None:
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def pick_by_name(df: pd.DataFrame, field: Field, text: str) -> tuple[pd.DataFrame, str | None]:
    """
    Rows for one faction/unit. An exact normalized match wins; otherwise the
    substring matches narrowed to their most frequent spelling so one answer
    never mixes capitalisation variants.
    """
    col = field.value
    q = normalize_text(text)
    if col not in df.columns or df.empty or not q:
        return df.iloc[0:0], None
    norm = df[col].map(normalize_text)

    exact = df[norm == q]
    if not exact.empty:
        return exact, _most_common(exact[col])

    partial = df[norm.map(lambda n: q in n).astype(bool)]
    if partial.empty:
        return partial, None
    chosen = _most_common(partial[col])
    return partial[partial[col] == chosen], chosen


def distinct_values(df: pd.DataFrame, field: Field, text: str = None) -> list[dict]:
    """
    Distinct names by normalized form, each shown with its most common
    spelling. Prefix matches sort ahead of mid-string ones.
    """
    col = field.value
    if col not in df.columns or df.empty:
        return []
    groups: dict[str, Counter] = {}
    for raw in df[col]:
        key = normalize_text(raw)
        if not key:
            continue
        groups.setdefault(key, Counter())[raw] += 1

    out = []
    for key, spellings in groups.items():
        display = spellings.most_common(1)[0][0]
        rank = match_rank(text, key) if text else 0
        if rank is None:
            continue
        out.append((rank, display.lower(), {"name": display, "normalized": key,
                                            "variants": len(spellings)}))
    out.sort(key=lambda t: (t[0], t[1]))
    return [item for _, _, item in out]


def suggest(df: pd.DataFrame, field: Field, text: str, n: int = SUGGESTION_N) -> list[str]:
    """Names to offer when a lookup misses: closest matches first, then A-Z."""
    col = field.value
    if col not in df.columns:
        return []
    names = sorted({v for v in df[col] if v})
    names.sort(key=lambda v: 0 if matches(text, v) else 1)
    return names[:n]


def _first_match(df: pd.DataFrame, field: Field, text: str) -> dict | None:
    rows, _ = pick_by_name(df, field, text)
    if rows.empty:
        return None
    return row_to_record(rows.iloc[0])


async def _faction_rows(cache: dm.DatasetCache, faction: str, min_games: int):
    ds = await cache.ensure(dm.WARSCROLLS)
    eligible = apply_min_games(ds.frame, min_games)
    rows, chosen = pick_by_name(eligible, Field.FACTION, faction)
    return ds, rows, chosen


def _faction_miss(kind: str, faction: str, ds: dm.Dataset, min_games: int) -> dict:
    # only offer names that would survive the same min-games filter
    eligible = apply_min_games(ds.frame, min_games)
    return {
        "type": kind,
        "query": faction,
        "records": [],
        "suggestions": suggest(eligible, Field.FACTION, faction),
        "meta": _meta(ds, min_games, faction=None),
    }


# ── Commands ──────────────────────────────────────────────────────────────────

@guarded
async def warscroll_search(cache: dm.DatasetCache, name: str,
                           min_games: int = DEFAULT_MIN_GAMES, limit: int = TOP_N) -> dict:
    ds = await cache.ensure(dm.WARSCROLLS)
    matched = query(ds.frame, min_games,
                    predicate=lambda d: name_mask(d, Field.WARSCROLL, name), limit=0)
    return {
        "type": "warscroll_search",
        "query": name,
        "records": to_records(matched.head(limit)),
        "meta": _meta(ds, min_games, total=len(matched)),
    }


@guarded
async def compare(cache: dm.DatasetCache, a: str, b: str,
                  min_games: int = DEFAULT_MIN_GAMES) -> dict:
    ds = await cache.ensure(dm.WARSCROLLS)
    eligible = apply_min_games(ds.frame, min_games)
    left, right = _first_match(eligible, Field.WARSCROLL, a), _first_match(eligible, Field.WARSCROLL, b)
    records = [left, right] if (left or right) else []
    for r in records:
        if r:
            r["impact"] = metrics.impact(r.get(Field.WIN_RATE.value), r.get(Field.WIN_RATE_WITHOUT.value))
    return {
        "type": "compare",
        "query": [a, b],
        "records": records,
        "meta": _meta(ds, min_games),
    }


@guarded
async def usage_ranking(cache: dm.DatasetCache, faction: str, least: bool = False,
                        min_games: int = DEFAULT_MIN_GAMES, limit: int = TOP_N) -> dict:
    kind = "least_common" if least else "most_common"
    ds, rows, chosen = await _faction_rows(cache, faction, min_games)
    if chosen is None:
        return _faction_miss(kind, faction, ds, min_games)
    ranked = metrics.rank_usage(rows, ascending=least).head(limit)
    return {
        "type": kind,
        "query": faction,
        "records": to_records(ranked),
        "meta": _meta(ds, min_games, faction=chosen),
    }


@guarded
async def impact_ranking(cache: dm.DatasetCache, faction: str, least: bool = False,
                         min_games: int = DEFAULT_MIN_GAMES, limit: int = TOP_N) -> dict:
    """Win % with the unit minus Win % without it, best (or worst) first."""
    kind = "least_impact" if least else "impact"
    ds, rows, chosen = await _faction_rows(cache, faction, min_games)
    if chosen is None:
        return _faction_miss(kind, faction, ds, min_games)
    ranked = metrics.rank_by(metrics.with_impact(rows), "impact", ascending=least).head(limit)
    return {
        "type": kind,
        "query": faction,
        "records": to_records(ranked),
        "meta": _meta(ds, min_games, faction=chosen),
    }


async def faction_baseline(cache: dm.DatasetCache, faction: str) -> dict | None:
    """The faction's overall row from the faction sheet, as a record."""
    fds = await cache.ensure(dm.FACTIONS)
    rows, _ = pick_by_name(fds.frame, Field.FACTION, faction)
    return row_to_record(metrics.overall_row(rows))


@guarded
async def lift_ranking(cache: dm.DatasetCache, faction: str, down: bool = False,
                       min_games: int = DEFAULT_MIN_GAMES, limit: int = TOP_N) -> dict:
    """Units pulling the faction's overall Win % up (or down)."""
    kind = "pulling_down" if down else "pulling_up"
    ds, rows, chosen = await _faction_rows(cache, faction, min_games)
    if chosen is None:
        return _faction_miss(kind, faction, ds, min_games)
    baseline = await faction_baseline(cache, chosen)
    base_wr = baseline.get(Field.WIN_RATE.value) if baseline else None
    lifted = metrics.with_lift(rows, base_wr)
    ranked = (metrics.pulling_down(lifted) if down else metrics.pulling_up(lifted)).head(limit)
    return {
        "type": kind,
        "query": faction,
        "records": to_records(ranked),
        "meta": _meta(ds, min_games, faction=chosen, baseline=baseline, baseline_win_rate=base_wr),
    }


@guarded
async def faction_stats(cache: dm.DatasetCache, name: str, formation: str = None,
                        min_games: int = DEFAULT_MIN_GAMES) -> dict:
    ds = await cache.ensure(dm.FACTIONS)
    eligible = apply_min_games(ds.frame, min_games)
    rows, chosen = pick_by_name(eligible, Field.FACTION, name)
    if chosen is None:
        return _faction_miss("faction_stats", name, ds, min_games)

    if formation and normalize_text(formation) != metrics.OVERALL:
        picked, _ = pick_by_name(rows, Field.FORMATION, formation)
        record = row_to_record(picked.iloc[0]) if not picked.empty else None
    else:
        record = row_to_record(metrics.overall_row(rows))

    records = []
    if record is not None:
        shape = metrics.elo_dispersion(record.get(Field.AVG_ELO.value),
                                       record.get(Field.MEDIAN_ELO.value))
        record["elo_shape"] = shape
        record["elo_blurb"] = metrics.ELO_BLURBS.get(shape)
        records.append(record)

    formations = [d["name"] for d in distinct_values(rows, Field.FORMATION)]
    return {
        "type": "faction_stats",
        "query": name,
        "records": records,
        "meta": _meta(ds, min_games, faction=chosen, formation=formation or "Overall",
                      formations=formations),
    }


@guarded
async def faction_summary(cache: dm.DatasetCache, faction: str,
                          min_games: int = DEFAULT_MIN_GAMES, n: int = SUMMARY_N) -> dict:
    """Top/bottom n by usage and by impact, for one compact card."""
    ds, rows, chosen = await _faction_rows(cache, faction, min_games)
    if chosen is None:
        return _faction_miss("faction_summary", faction, ds, min_games)
    scored = metrics.with_impact(rows)
    sections = {
        "most_common":  to_records(metrics.rank_usage(scored, ascending=False).head(n)),
        "least_common": to_records(metrics.rank_usage(scored, ascending=True).head(n)),
        "best_impact":  to_records(metrics.rank_by(scored, "impact", ascending=False).head(n)),
        "worst_impact": to_records(metrics.rank_by(scored, "impact", ascending=True).head(n)),
    }
    return {
        "type": "faction_summary",
        "query": faction,
        "records": sections["most_common"],
        "sections": sections,
        "meta": _meta(ds, min_games, faction=chosen),
    }


DISCOVERY = {
    "factions":   (dm.WARSCROLLS, Field.FACTION),
    "formations": (dm.FACTIONS,   Field.FORMATION),
    "units":      (dm.WARSCROLLS, Field.WARSCROLL),
}


@guarded
async def discover(cache: dm.DatasetCache, kind: str, text: str = None, faction: str = None,
                   min_games: int = DEFAULT_MIN_GAMES, limit: int = DISCOVERY_N) -> dict:
    dataset, field = DISCOVERY[kind]
    ds = await cache.ensure(dataset)
    df = apply_min_games(ds.frame, min_games)
    if faction:
        df, _ = pick_by_name(df, Field.FACTION, faction)
    values = distinct_values(df, field, text)
    return {
        "type": kind,
        "query": text,
        "records": values[:limit],
        "meta": _meta(ds, min_games, total=len(values)),
    }


@guarded
async def player_lookup(cache: dm.DatasetCache, name: str,
                        min_games: int = DEFAULT_MIN_GAMES, limit: int = TOP_N) -> dict:
    ds = await cache.ensure(dm.LEAGUE)
    matched = query(ds.frame, min_games,
                    predicate=lambda d: name_mask(d, Field.PLAYER, name), limit=0)
    return {
        "type": "player",
        "query": name,
        "records": to_records(matched.head(limit)),
        "meta": _meta(ds, min_games, total=len(matched)),
    }


@guarded
async def peek(cache: dm.DatasetCache, dataset: str = dm.WARSCROLLS) -> dict:
    ds = await cache.ensure(dataset)
    resolved = {f.value: h for f, h in ds.columns.columns.items() if h is not None}
    return {
        "type": "peek",
        "query": dataset,
        "records": [{"dataset": ds.name, "headers": list(ds.headers), "resolved": resolved,
                     "rows": len(ds)}],
        "meta": _meta(ds, 0),
    }


@guarded
async def refresh(cache: dm.DatasetCache, is_admin: bool) -> dict:
    if not is_admin:
        raise Unauthorized("Only bot admins can refresh the data.")
    results = await cache.refresh_all()
    return {
        "type": "refresh",
        "query": None,
        "records": [
            {"dataset": r.dataset, "status": r.status.value, "reason": r.reason, "rows": r.rows}
            for r in results
        ],
        "meta": {},
    }
