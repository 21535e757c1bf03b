"""
columns.py
Canonical fields and the header aliases they have gone by across sheet
revisions. New spellings go in ALIASES only; call sites use Field.
"""

from dataclasses import dataclass
from enum import Enum


class Field(str, Enum):
    FACTION          = "faction"
    WARSCROLL        = "warscroll"
    FORMATION        = "formation"
    GAMES            = "games"
    WIN_RATE         = "win_rate"
    WIN_RATE_WITHOUT = "win_rate_without"
    USED_PCT         = "used_pct"
    AVG_PER_LIST     = "avg_per_list"
    AVG_ELO          = "avg_elo"
    MEDIAN_ELO       = "median_elo"
    PLAYER           = "player"
    WINS             = "wins"
    LOSSES           = "losses"
    DRAWS            = "draws"
    ELO              = "elo"


# Priority order matters: the first alias present in a header wins.
ALIASES: dict[Field, tuple[str, ...]] = {
    Field.FACTION:          ("Faction", "Faction Name", "Army"),
    Field.WARSCROLL:        ("Warscroll", "Warscroll Name", "Unit", "Unit Name"),
    Field.FORMATION:        ("Battle Formation", "Formation", "Battle Formation Name", "Subfaction"),
    Field.GAMES:            ("Faction Games Featured", "Games Featured", "Games", "Games Played",
                             "Played", "GP", "Total Games"),
    Field.WIN_RATE:         ("Win %", "Win%", "Win Rate", "Winrate", "Win Pct", "Win Percentage"),
    Field.WIN_RATE_WITHOUT: ("Win % Without", "Win% Without", "Win Rate Without", "Win % w/o",
                             "Without Win %"),
    Field.USED_PCT:         ("Used %", "Used%", "Used", "Use %", "Used Percent", "Usage %",
                             "Pick %", "Picked %"),
    Field.AVG_PER_LIST:     ("Av Per List", "Avg Per List", "Average Per List", "Per List"),
    Field.AVG_ELO:          ("Average Elo", "Avg Elo", "Mean Elo", "Elo Average"),
    Field.MEDIAN_ELO:       ("Median Elo", "Med Elo", "Elo Median"),
    Field.PLAYER:           ("Player", "Player Name", "Name"),
    Field.WINS:             ("Wins", "W"),
    Field.LOSSES:           ("Losses", "L"),
    Field.DRAWS:            ("Draws", "D"),
    Field.ELO:              ("Elo", "Rating", "Current Elo"),
}

NUMERIC_FIELDS = frozenset({
    Field.GAMES, Field.WIN_RATE, Field.WIN_RATE_WITHOUT, Field.USED_PCT,
    Field.AVG_PER_LIST, Field.AVG_ELO, Field.MEDIAN_ELO,
    Field.WINS, Field.LOSSES, Field.DRAWS, Field.ELO,
})


def resolve(headers, field: Field) -> int | None:
    """Index of the first alias of `field` present in `headers`, else None."""
    positions = {h: i for i, h in reversed(list(enumerate(headers)))}
    for alias in ALIASES[field]:
        if alias in positions:
            return positions[alias]
    return None


@dataclass(frozen=True)
class ColumnMap:
    """Field -> actual header name for one dataset load (None if unresolved)."""
    headers: tuple[str, ...]
    columns: dict

    @classmethod
    def from_headers(cls, headers) -> "ColumnMap":
        headers = tuple(headers)
        columns = {}
        for field in Field:
            idx = resolve(headers, field)
            columns[field] = headers[idx] if idx is not None else None
        return cls(headers=headers, columns=columns)

    def header_for(self, field: Field) -> str | None:
        return self.columns.get(field)

    def has(self, field: Field) -> bool:
        return self.columns.get(field) is not None

    def get(self, record: dict, field: Field, default: str = "") -> str:
        """Raw string value of `field` in `record`; `default` when unresolved."""
        header = self.columns.get(field)
        if header is None:
            return default
        return record.get(header, default)

    def missing(self) -> list[Field]:
        return [f for f, h in self.columns.items() if h is None]
