"""
embeds.py
Converts the structured result dicts from analysis.py into Discord Embed
objects. Every number goes through normalize.fmt_* so missing values show
as a dash instead of "nan".
"""

import discord

from columns import Field
from normalize import PLACEHOLDER, fmt_int, fmt_one_decimal, fmt_pct, fmt_pp

FIELD_LIMIT = 1024   # Discord embed field value cap
FOOTER      = "Source: Google Sheets (CSV)"

COLOR_OK    = discord.Color.blue()
COLOR_WARN  = discord.Color.gold()
COLOR_ERROR = discord.Color.red()


def safe_field_value(text: str) -> str:
    if not text:
        return PLACEHOLDER
    if len(text) <= FIELD_LIMIT:
        return text
    return text[:FIELD_LIMIT - 14] + "\n…(trimmed)"


def _v(r: dict, f: Field):
    return r.get(f.value)


def _text(r: dict, f: Field) -> str:
    return r.get(f.value) or PLACEHOLDER


def _footer(embed: discord.Embed, meta: dict) -> discord.Embed:
    ts = meta.get("dataset_timestamp")
    text = FOOTER
    if ts is not None:
        text += f" | data as of {ts:%Y-%m-%d %H:%M} UTC"
    embed.set_footer(text=text)
    return embed


def _make(title: str, description: str, fields: list[tuple[str, str]], meta: dict,
          color=COLOR_OK) -> discord.Embed:
    embed = discord.Embed(title=title[:256], description=description, color=color)
    for name, value in fields:
        embed.add_field(name=name, value=safe_field_value(value), inline=False)
    return _footer(embed, meta)


# ── Line formats ─────────────────────────────────────────────────────────────

def unit_line(i: int, r: dict) -> str:
    return (
        f"{i}. **{_text(r, Field.WARSCROLL)}** ({_text(r, Field.FACTION)})\n"
        f"Games: {fmt_int(_v(r, Field.GAMES))} | Win: {fmt_pct(_v(r, Field.WIN_RATE))} | "
        f"Used: {fmt_pct(_v(r, Field.USED_PCT))} | Avg/list: {fmt_one_decimal(_v(r, Field.AVG_PER_LIST))} | "
        f"Win w/o: {fmt_pct(_v(r, Field.WIN_RATE_WITHOUT))}"
    )


def usage_line(i: int, r: dict) -> str:
    return (
        f"{i}. **{_text(r, Field.WARSCROLL)}**\n"
        f"Used: {fmt_pct(_v(r, Field.USED_PCT))} | Games: {fmt_int(_v(r, Field.GAMES))} | "
        f"Win: {fmt_pct(_v(r, Field.WIN_RATE))}"
    )


def impact_line(i: int, r: dict) -> str:
    return (
        f"{i}. **{_text(r, Field.WARSCROLL)}**\n"
        f"Impact: {fmt_pp(r.get('impact'))} | Win: {fmt_pct(_v(r, Field.WIN_RATE))} | "
        f"Win w/o: {fmt_pct(_v(r, Field.WIN_RATE_WITHOUT))} | Used: {fmt_pct(_v(r, Field.USED_PCT))} | "
        f"Games: {fmt_int(_v(r, Field.GAMES))}"
    )


def lift_line(i: int, r: dict) -> str:
    return (
        f"{i}. **{_text(r, Field.WARSCROLL)}**\n"
        f"Lift: {fmt_pp(r.get('lift'))} | Win: {fmt_pct(_v(r, Field.WIN_RATE))} | "
        f"Used: {fmt_pct(_v(r, Field.USED_PCT))} | Games: {fmt_int(_v(r, Field.GAMES))}"
    )


def _lines(records: list[dict], fmt) -> str:
    return "\n\n".join(fmt(i, r) for i, r in enumerate(records, 1))


# ── Error / empty cards ───────────────────────────────────────────────────────

def error_embed(result: dict) -> discord.Embed:
    kind = result.get("error_kind", "error").replace("_", " ").title()
    return discord.Embed(title=f"❌ {kind}", description=result.get("message", ""), color=COLOR_ERROR)


def no_results_embed(result: dict) -> discord.Embed:
    meta = result.get("meta", {})
    q = result.get("query")
    desc = f'No results for "{q}" (min {meta.get("min_games", 0)} games).'
    if result.get("suggestions"):
        desc += "\nTry:\n" + "\n".join(f"• {s}" for s in result["suggestions"])
    return _footer(discord.Embed(title="No matches", description=desc, color=COLOR_WARN), meta)


# ── Result cards ─────────────────────────────────────────────────────────────

def warscroll_embed(result: dict) -> discord.Embed:
    recs, meta = result["records"], result["meta"]
    total = meta.get("total", len(recs))
    shown = f"Showing {len(recs)}" + (f" of {total}" if total > len(recs) else "") + " matches."
    return _make(f"Warscroll results for: {result['query']}", shown,
                 [("Results", _lines(recs, unit_line))], meta)


def compare_embed(result: dict) -> discord.Embed:
    meta = result["meta"]
    fields = []
    for q, r in zip(result["query"], result["records"]):
        if r is None:
            fields.append((q, f"No match (min {meta.get('min_games', 0)} games)."))
        else:
            fields.append((_text(r, Field.WARSCROLL),
                           unit_line(1, r)[3:] + f"\nImpact: {fmt_pp(r.get('impact'))}"))
    return _make("Warscroll comparison", " vs ".join(result["query"]), fields, meta)


def ranking_embed(result: dict) -> discord.Embed:
    t, recs, meta = result["type"], result["records"], result["meta"]
    faction = meta.get("faction")
    titles = {
        "most_common":  (f"Top {len(recs)} most common warscrolls — {faction}", "Most common = highest Used %", usage_line),
        "least_common": (f"Bottom {len(recs)} least common warscrolls — {faction}", "Least common = lowest Used %", usage_line),
        "impact":       (f"Top {len(recs)} warscrolls by impact — {faction}", "Impact = Win % − Win % Without (percentage points)", impact_line),
        "least_impact": (f"Bottom {len(recs)} warscrolls by impact — {faction}", "Impact = Win % − Win % Without (percentage points)", impact_line),
    }
    title, desc, fmt = titles[t]
    return _make(title, desc, [("Results", _lines(recs, fmt))], meta)


def lift_embed(result: dict) -> discord.Embed:
    recs, meta = result["records"], result["meta"]
    up = result["type"] == "pulling_up"
    base = meta.get("baseline_win_rate")
    title = f"Warscrolls pulling {'up' if up else 'down'} — {meta.get('faction')}"
    desc = f"Lift = unit Win % − faction overall Win % ({fmt_pct(base)})"
    if not recs:
        desc += "\nNothing " + ("above" if up else "below") + " the faction baseline."
        return _footer(discord.Embed(title=title, description=desc, color=COLOR_WARN), meta)
    return _make(title, desc, [("Results", _lines(recs, lift_line))], meta)


def faction_stats_embed(result: dict) -> discord.Embed:
    meta = result["meta"]
    if not result["records"]:
        desc = f"No formation matching \"{meta.get('formation')}\" (min {meta.get('min_games', 0)} games)."
        if meta.get("formations"):
            desc += "\nAvailable: " + ", ".join(meta["formations"])
        return _footer(discord.Embed(title=meta.get("faction") or "Faction", description=desc,
                                     color=COLOR_WARN), meta)
    r = result["records"][0]
    formation = r.get(Field.FORMATION.value) or meta.get("formation")
    fields = [
        ("Results", f"Games: {fmt_int(_v(r, Field.GAMES))} | Win: {fmt_pct(_v(r, Field.WIN_RATE))} | "
                    f"Used: {fmt_pct(_v(r, Field.USED_PCT))}"),
        ("Elo", f"Average: {fmt_int(_v(r, Field.AVG_ELO))} | Median: {fmt_int(_v(r, Field.MEDIAN_ELO))}"),
    ]
    if r.get("elo_shape"):
        fields.append((f"Player base: {r['elo_shape']}", r.get("elo_blurb") or PLACEHOLDER))
    return _make(f"{meta.get('faction')} — {formation}", "", fields, meta)


def faction_summary_embed(result: dict) -> discord.Embed:
    s, meta = result["sections"], result["meta"]
    fields = [
        ("Top 3 most common (Used %)",     _lines(s["most_common"], usage_line)),
        ("Bottom 3 least common (Used %)", _lines(s["least_common"], usage_line)),
        ("Top 3 best impact (+pp)",        _lines(s["best_impact"], impact_line)),
        ("Bottom 3 worst impact (+pp)",    _lines(s["worst_impact"], impact_line)),
    ]
    return _make(f"Faction summary — {meta.get('faction')}",
                 "Top/bottom 3 for readability.", fields, meta)


def discovery_embed(result: dict) -> discord.Embed:
    recs, meta = result["records"], result["meta"]
    names = "\n".join(f"• {r['name']}" for r in recs)
    more = meta.get("total", len(recs)) - len(recs)
    if more > 0:
        names += f"\n…and {more} more"
    title = result["type"].title() + (f" matching \"{result['query']}\"" if result.get("query") else "")
    return _make(title, "", [("Results", names)], meta)


def player_embed(result: dict) -> discord.Embed:
    recs, meta = result["records"], result["meta"]
    lines = [
        f"{i}. **{_text(r, Field.PLAYER)}** ({_text(r, Field.FACTION)})\n"
        f"W/L/D: {fmt_int(_v(r, Field.WINS))}/{fmt_int(_v(r, Field.LOSSES))}/{fmt_int(_v(r, Field.DRAWS))} | "
        f"Games: {fmt_int(_v(r, Field.GAMES))} | Elo: {fmt_int(_v(r, Field.ELO))}"
        for i, r in enumerate(recs, 1)
    ]
    return _make(f"League players matching: {result['query']}", "", [("Results", "\n\n".join(lines))], meta)


def peek_embed(result: dict) -> discord.Embed:
    r = result["records"][0]
    mapped = "\n".join(f"{k} ← `{v}`" for k, v in r["resolved"].items())
    return _make(f"Headers I see — {r['dataset']} ({r['rows']} rows)",
                 "• " + "\n• ".join(r["headers"]) if r["headers"] else "(empty sheet)",
                 [("Recognised columns", mapped)], result["meta"])


_STATUS_ICONS = {"reloaded": "✅", "kept_stale": "⚠️", "failed": "❌", "not_configured": "➖"}


def refresh_embed(result: dict) -> discord.Embed:
    lines = []
    for r in result["records"]:
        icon = _STATUS_ICONS.get(r["status"], "•")
        detail = f"{r['rows']} rows" if r["status"] == "reloaded" else r["status"].replace("_", " ")
        if r["reason"] and r["status"] != "not_configured":
            detail += f" ({r['reason']})"
        lines.append(f"{icon} **{r['dataset']}**: {detail}")
    ok = all(r["status"] in ("reloaded", "not_configured") for r in result["records"])
    return discord.Embed(title="Cache refresh", description="\n".join(lines),
                         color=COLOR_OK if ok else COLOR_WARN)


# ── Dispatch ─────────────────────────────────────────────────────────────────

_RENDERERS = {
    "warscroll_search": warscroll_embed,
    "compare":          compare_embed,
    "most_common":      ranking_embed,
    "least_common":     ranking_embed,
    "impact":           ranking_embed,
    "least_impact":     ranking_embed,
    "pulling_up":       lift_embed,
    "pulling_down":     lift_embed,
    "faction_stats":    faction_stats_embed,
    "faction_summary":  faction_summary_embed,
    "factions":         discovery_embed,
    "formations":       discovery_embed,
    "units":            discovery_embed,
    "player":           player_embed,
    "peek":             peek_embed,
    "refresh":          refresh_embed,
}

# These render their own "nothing found" text from meta.
_EMPTY_OK = {"pulling_up", "pulling_down", "faction_stats", "refresh"}


def build_embed(result: dict) -> discord.Embed:
    if "error_kind" in result:
        return error_embed(result)
    t = result.get("type")
    faction_missing = "faction" in result.get("meta", {}) and result["meta"]["faction"] is None
    if faction_missing or (not result.get("records") and t not in _EMPTY_OK):
        return no_results_embed(result)
    return _RENDERERS[t](result)
