"""Header alias resolution."""

import pytest

from columns import ALIASES, ColumnMap, Field, resolve


class TestResolve:

    def test_win_rate_aliases(self):
        assert resolve(["Faction", "Win Rate"], Field.WIN_RATE) == 1
        assert resolve(["Win %", "Faction"], Field.WIN_RATE) == 0

    def test_priority_order_wins_over_position(self):
        headers = ["Used", "Faction", "Used %"]
        assert resolve(headers, Field.USED_PCT) == 2

    def test_unresolved_is_none(self):
        assert resolve(["Faction", "Warscroll"], Field.USED_PCT) is None

    def test_exact_case(self):
        assert resolve(["win %"], Field.WIN_RATE) is None

    @pytest.mark.parametrize("alias", ALIASES[Field.USED_PCT])
    def test_every_used_alias(self, alias):
        assert resolve(["Faction", alias], Field.USED_PCT) == 1

    def test_stable_across_calls(self):
        headers = ["Faction", "Games", "Win%", "Used"]
        first = [resolve(headers, f) for f in Field]
        assert [resolve(headers, f) for f in Field] == first


class TestColumnMap:

    def test_maps_fields_to_headers(self):
        cm = ColumnMap.from_headers(["Faction", "Warscroll", "Win Rate"])
        assert cm.header_for(Field.WIN_RATE) == "Win Rate"
        assert cm.has(Field.WARSCROLL)
        assert not cm.has(Field.USED_PCT)
        assert Field.USED_PCT in cm.missing()

    def test_get_reads_record_through_alias(self):
        cm = ColumnMap.from_headers(["Faction", "Pick %"])
        assert cm.get({"Faction": "Seraphon", "Pick %": "12%"}, Field.USED_PCT) == "12%"

    def test_get_unresolved_returns_default(self):
        cm = ColumnMap.from_headers(["Faction"])
        assert cm.get({"Faction": "Seraphon"}, Field.WIN_RATE) == ""
        assert cm.get({"Faction": "Seraphon"}, Field.WIN_RATE, default=None) is None
