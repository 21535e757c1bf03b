"""
bot.py — Warscroll stats bot
Architecture:
  config.py         .env / environment settings
  data_manager.py   fetches & caches the sheet CSVs (DatasetCache)
  analysis.py       min-games filter, name matching, rankings -> result dicts
  metrics.py        usage, impact, lift, Elo dispersion
  embeds.py         Discord embed card builders
"""

import asyncio
import logging

import discord
from aiohttp import web
from discord import app_commands
from discord.ext import commands

import analysis
import config
import data_manager as dm
import embeds as emb

log = logging.getLogger(__name__)


# ── Bot ───────────────────────────────────────────────────────────────────────

class StatsBot(commands.Bot):
    """Discord client that owns the dataset cache handed to every command."""

    def __init__(self, settings: config.Settings, cache: dm.DatasetCache = None):
        super().__init__(command_prefix="!", intents=discord.Intents.default())
        self.settings = settings
        self.cache = cache or dm.DatasetCache(
            settings.sources,
            ttl_s=settings.cache_ttl_s,
            timeout_s=settings.fetch_timeout_s,
        )
        self._warm_task = None
        self._web_runner = None

    async def setup_hook(self):
        self._web_runner = await start_keepalive(self.settings.port)
        for cmd in COMMANDS:
            self.tree.add_command(cmd)
        await self.tree.sync()
        # warm cache so the first user doesn't pay the fetch cost
        self._warm_task = asyncio.create_task(self.cache.warm_up())

    async def on_ready(self):
        log.info("--- Stats bot ONLINE | %s | datasets: %s ---",
                 self.user, ", ".join(self.cache.configured()))

    async def close(self):
        if self._web_runner is not None:
            await self._web_runner.cleanup()
        await super().close()

    def is_admin(self, user) -> bool:
        if user.id in self.settings.admin_user_ids:
            return True
        perms = getattr(user, "guild_permissions", None)
        return bool(perms and perms.administrator)


# ── Keep-alive listener ───────────────────────────────────────────────────────

async def start_keepalive(port: int) -> web.AppRunner:
    """Tiny HTTP server so hosts that expect an open port keep the bot alive."""
    async def health(_request):
        return web.Response(text="OK", content_type="text/plain")

    app = web.Application()
    app.router.add_get("/", health)
    app.router.add_get("/health", health)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    log.info("HTTP listening on :%s (/, /health)", port)
    return runner


# ── Plumbing ──────────────────────────────────────────────────────────────────

async def _run(interaction: discord.Interaction, fn, *args, **kwargs):
    """Defer once, run one analysis call, always answer."""
    await interaction.response.defer()
    try:
        result = await fn(interaction.client.cache, *args, **kwargs)
        embed = emb.build_embed(result)
    except Exception:
        name = interaction.command.name if interaction.command else "?"
        log.exception("Command /%s failed", name)
        await interaction.followup.send("❌ Internal error (check logs).")
        return
    await interaction.followup.send(embed=embed)


def _min_games(interaction: discord.Interaction) -> int:
    return interaction.client.settings.min_games


async def _choices(interaction: discord.Interaction, kind: str, current: str,
                   faction: str = None) -> list[app_commands.Choice[str]]:
    result = await analysis.discover(interaction.client.cache, kind, current or None,
                                     faction=faction, min_games=_min_games(interaction))
    if "error_kind" in result:
        return []
    return [app_commands.Choice(name=r["name"][:100], value=r["name"][:100])
            for r in result["records"]]


async def faction_autocomplete(interaction: discord.Interaction, current: str):
    return await _choices(interaction, "factions", current)


async def unit_autocomplete(interaction: discord.Interaction, current: str):
    return await _choices(interaction, "units", current)


async def formation_autocomplete(interaction: discord.Interaction, current: str):
    faction = getattr(interaction.namespace, "name", None) or getattr(interaction.namespace, "faction", None)
    return await _choices(interaction, "formations", current, faction=faction)


# ── Slash Commands ────────────────────────────────────────────────────────────

@app_commands.command(name="warscroll-search", description="Search warscroll stats (partial matches supported)")
@app_commands.describe(name="Warscroll name (partial ok)")
@app_commands.autocomplete(name=unit_autocomplete)
async def warscroll_search(interaction: discord.Interaction, name: str):
    await _run(interaction, analysis.warscroll_search, name, min_games=_min_games(interaction))


@app_commands.command(name="compare", description="Compare two warscrolls side by side")
@app_commands.describe(a="First warscroll", b="Second warscroll")
@app_commands.autocomplete(a=unit_autocomplete, b=unit_autocomplete)
async def compare(interaction: discord.Interaction, a: str, b: str):
    await _run(interaction, analysis.compare, a, b, min_games=_min_games(interaction))


def _faction_command(name: str, description: str, fn, **options):
    @app_commands.command(name=name, description=description)
    @app_commands.describe(faction="Faction name")
    @app_commands.autocomplete(faction=faction_autocomplete)
    async def _command(interaction: discord.Interaction, faction: str):
        await _run(interaction, fn, faction, min_games=_min_games(interaction), **options)
    return _command


_COMMON_DESC = "Top 10 most common warscrolls in a faction (by Used %)"
_LEAST_DESC  = "Bottom 10 least common warscrolls in a faction (by Used %)"
_IMPACT_DESC = "Top 10 warscrolls by impact (+pp) for a faction (Win % − Win % Without)"

FACTION_COMMANDS = [
    _faction_command("most-common", _COMMON_DESC, analysis.usage_ranking),
    _faction_command("top10", "Alias of /most-common", analysis.usage_ranking),
    _faction_command("least-common", _LEAST_DESC, analysis.usage_ranking, least=True),
    _faction_command("least10", "Alias of /least-common", analysis.usage_ranking, least=True),
    _faction_command("impact", _IMPACT_DESC, analysis.impact_ranking),
    _faction_command("impact10", "Alias of /impact", analysis.impact_ranking),
    _faction_command("least-impact", "Bottom 10 warscrolls by impact for a faction",
                     analysis.impact_ranking, least=True),
    _faction_command("pulling-up", "Warscrolls winning more than their faction overall",
                     analysis.lift_ranking),
    _faction_command("pulling-down", "Warscrolls winning less than their faction overall",
                     analysis.lift_ranking, down=True),
    _faction_command("faction-summary", "Faction summary: common, least common, best & worst impact (top 3 each)",
                     analysis.faction_summary),
]


@app_commands.command(name="faction-stats", description="Faction win rate, usage and Elo spread")
@app_commands.describe(name="Faction name", formation="Battle formation (defaults to Overall)")
@app_commands.autocomplete(name=faction_autocomplete, formation=formation_autocomplete)
async def faction_stats(interaction: discord.Interaction, name: str, formation: str = None):
    await _run(interaction, analysis.faction_stats, name, formation, min_games=_min_games(interaction))


def _discovery_command(kind: str, description: str, with_faction: bool):
    if with_faction:
        @app_commands.command(name=kind, description=description)
        @app_commands.describe(filter="Only names containing this", faction="Limit to one faction")
        @app_commands.autocomplete(faction=faction_autocomplete)
        async def _command(interaction: discord.Interaction, filter: str = None, faction: str = None):
            await _run(interaction, analysis.discover, kind, filter, faction=faction,
                       min_games=_min_games(interaction))
    else:
        @app_commands.command(name=kind, description=description)
        @app_commands.describe(filter="Only names containing this")
        async def _command(interaction: discord.Interaction, filter: str = None):
            await _run(interaction, analysis.discover, kind, filter, min_games=_min_games(interaction))
    return _command


DISCOVERY_COMMANDS = [
    _discovery_command("factions", "List factions", with_faction=False),
    _discovery_command("formations", "List battle formations", with_faction=True),
    _discovery_command("units", "List warscrolls", with_faction=True),
]


@app_commands.command(name="player", description="Look up league players")
@app_commands.describe(name="Player name (partial ok)")
async def player(interaction: discord.Interaction, name: str):
    await _run(interaction, analysis.player_lookup, name, min_games=_min_games(interaction))


@app_commands.command(name="peek", description="Show detected sheet headers")
@app_commands.describe(dataset="Which sheet")
@app_commands.choices(dataset=[app_commands.Choice(name=d, value=d) for d in dm.DATASETS])
async def peek(interaction: discord.Interaction, dataset: str = dm.WARSCROLLS):
    await _run(interaction, analysis.peek, dataset)


@app_commands.command(name="refresh", description="Refresh cached CSV data now (admin only)")
async def refresh(interaction: discord.Interaction):
    is_admin = interaction.client.is_admin(interaction.user)
    await _run(interaction, analysis.refresh, is_admin)


COMMANDS = [warscroll_search, compare, faction_stats, player, peek, refresh,
            *FACTION_COMMANDS, *DISCOVERY_COMMANDS]


def main():
    settings = config.validate(config.load_settings())
    StatsBot(settings).run(settings.discord_token)


if __name__ == "__main__":
    main()
