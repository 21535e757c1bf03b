"""Shared test factories: sheet CSV text, a fake fetcher and a fake clock.

The default warscroll sheet below is what most analysis tests run against:

    Stormcast Eternals  Liberators       20 games  58%  used 40  w/o 50  impact +8
    Stormcast Eternals  Prosecutors       4 games  70%  used 10          (below min games)
    Stormcast Eternals  Annihilators      5 games  45%  used 25  w/o 50  impact -5
    Stormcast Eternals  Lord-Celestant   30 games  52%  used 80  w/o 48  impact +4
    The Stormcast Eternals  Vindictors   12 games  55%  used 30  w/o 51  impact +4
    Seraphon            Saurus Warriors  50 games  49%  used 60  w/o 51
    Seraphon            Kroxigor          8 games  58%  used 20  w/o 50
"""

import asyncio

import data_manager as dm
from errors import FetchFailed

WARSCROLL_HEADER = ["Faction", "Warscroll", "Faction Games Featured", "Win %",
                    "Used %", "Av Per List", "Win % Without"]

WARSCROLL_ROWS = [
    ["Stormcast Eternals", "Liberators", "20", "58%", "40%", "1.5", "50%"],
    ["Stormcast Eternals", "Prosecutors", "4", "70%", "10%", "1", "50%"],
    ["Stormcast Eternals", "Annihilators", "5", "45%", "25%", "1", "50%"],
    ["Stormcast Eternals", "Lord-Celestant", "30", "52%", "80%", "1", "48%"],
    ["The Stormcast Eternals", "Vindictors", "12", "55%", "30%", "1", "51%"],
    ["Seraphon", "Saurus Warriors", "50", "49%", "60%", "2", "51%"],
    ["Seraphon", "Kroxigor", "8", "58%", "20%", "1", "50%"],
]

FACTION_HEADER = ["Faction", "Battle Formation", "Games", "Win %", "Average Elo", "Median Elo"]

FACTION_ROWS = [
    ["Stormcast Eternals", "Thunderhead Host", "40", "50%", "420", "405"],
    ["Stormcast Eternals", "Overall", "120", "52%", "410", "408"],
    ["Seraphon", "Overall", "90", "50%", "395", "400"],
]

LEAGUE_HEADER = ["Player", "Faction", "Games Played", "Wins", "Losses", "Draws", "Elo"]

LEAGUE_ROWS = [
    ["Alice Smith", "Seraphon", "10", "7", "3", "0", "455"],
    ["Bob Jones", "Stormcast Eternals", "6", "2", "3", "1", "398"],
    ["Alicia Keys", "Nighthaunt", "3", "3", "0", "0", "420"],
]


# ─── CSV text ─────────────────────────────────────────────────────

def _cell(value) -> str:
    s = str(value)
    if any(ch in s for ch in ',"\n'):
        return '"' + s.replace('"', '""') + '"'
    return s


def make_csv(header, rows, newline="\n") -> str:
    lines = [",".join(_cell(c) for c in header)]
    lines += [",".join(_cell(c) for c in r) for r in rows]
    return newline.join(lines) + newline


def warscroll_csv(rows=None, header=None) -> str:
    return make_csv(header or WARSCROLL_HEADER, WARSCROLL_ROWS if rows is None else rows)


def faction_csv(rows=None, header=None) -> str:
    return make_csv(header or FACTION_HEADER, FACTION_ROWS if rows is None else rows)


def league_csv(rows=None, header=None) -> str:
    return make_csv(header or LEAGUE_HEADER, LEAGUE_ROWS if rows is None else rows)


# ─── Fakes ────────────────────────────────────────────────────────

class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFetcher:
    """Serves text per locator. Set `fail` to make every call raise FetchFailed."""

    def __init__(self, texts: dict):
        self.texts = dict(texts)
        self.calls = []
        self.fail = None

    async def __call__(self, locator: str) -> str:
        self.calls.append(locator)
        await asyncio.sleep(0)
        if self.fail:
            raise FetchFailed(self.fail)
        return self.texts[locator]


def make_cache(warscrolls=None, factions=None, league=None, ttl_s=3600, use_defaults=True):
    """DatasetCache over in-memory sheets. Returns (cache, fetcher, clock)."""
    if use_defaults:
        warscrolls = warscroll_csv() if warscrolls is None else warscrolls
        factions = faction_csv() if factions is None else factions
    texts = {}
    sources = {}
    for name, text in ((dm.WARSCROLLS, warscrolls), (dm.FACTIONS, factions), (dm.LEAGUE, league)):
        if text is None:
            sources[name] = None
        else:
            sources[name] = f"mem://{name}"
            texts[f"mem://{name}"] = text
    fetcher = FakeFetcher(texts)
    clock = FakeClock()
    cache = dm.DatasetCache(sources, ttl_s=ttl_s, fetcher=fetcher, clock=clock)
    return cache, fetcher, clock


def run(coro):
    return asyncio.run(coro)
