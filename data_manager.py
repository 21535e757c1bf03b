"""
data_manager.py
Fetches the published sheet CSVs, parses them once per load, and keeps the
latest good copy of each dataset in memory. Exposes resolved pandas
DataFrames to analysis.py.

  DatasetCache.ensure()       cached-or-fetch, soft-fails to stale data
  DatasetCache.refresh()      forced reload, returns a RefreshResult
  DatasetCache.refresh_all()  forced reload of every configured dataset
"""

import asyncio
import csv
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import aiohttp
import pandas as pd

from columns import ColumnMap, Field, NUMERIC_FIELDS
from errors import ConfigurationMissing, FetchFailed
from normalize import parse_numeric
from tabular import parse_csv

log = logging.getLogger(__name__)

# ── Constants ───────────────────────────────────────────────────────────────

WARSCROLLS = "warscrolls"
FACTIONS   = "factions"
LEAGUE     = "league"
DATASETS   = (WARSCROLLS, FACTIONS, LEAGUE)

DEFAULT_TTL_S     = 24 * 60 * 60   # sheet updates weekly
DEFAULT_TIMEOUT_S = 30


# ── Dataset ──────────────────────────────────────────────────────────────────

def build_frame(records: list[dict], colmap: ColumnMap) -> pd.DataFrame:
    """One column per resolved canonical field; numeric fields as float (NaN = unavailable)."""
    data = {}
    for f in Field:
        header = colmap.header_for(f)
        if header is None:
            continue
        values = [colmap.get(r, f) for r in records]
        if f in NUMERIC_FIELDS:
            data[f.value] = pd.Series([parse_numeric(v) for v in values], dtype="float64")
        else:
            data[f.value] = pd.Series(values, dtype="object")
    return pd.DataFrame(data, index=pd.RangeIndex(len(records)))


@dataclass(frozen=True)
class Dataset:
    """One generation of a dataset. Replaced whole on reload, never mutated."""
    name:      str
    source:    str
    headers:   tuple
    records:   tuple
    loaded_at: float
    columns:   ColumnMap = field(repr=False)
    frame:     pd.DataFrame = field(repr=False, compare=False)

    @classmethod
    def from_text(cls, name: str, source: str, text: str, loaded_at: float) -> "Dataset":
        headers, records = parse_csv(text)
        colmap = ColumnMap.from_headers(headers)
        return cls(
            name=name,
            source=source,
            headers=tuple(headers),
            records=tuple(records),
            loaded_at=loaded_at,
            columns=colmap,
            frame=build_frame(records, colmap),
        )

    @property
    def as_of(self) -> datetime:
        return datetime.fromtimestamp(self.loaded_at, tz=timezone.utc)

    def __len__(self):
        return len(self.records)


# ── Fetching ─────────────────────────────────────────────────────────────────

async def fetch_text(locator: str, timeout_s: float = DEFAULT_TIMEOUT_S) -> str:
    """Body of an http(s) URL or a local file. Any failure is a FetchFailed."""
    if not locator.lower().startswith(("http://", "https://")):
        try:
            return await asyncio.to_thread(Path(locator).read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FetchFailed(f"Could not read {locator}: {e}") from e

    timeout = aiohttp.ClientTimeout(total=timeout_s)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(locator, headers={"Cache-Control": "no-cache"}) as resp:
                if not 200 <= resp.status < 300:
                    raise FetchFailed(f"CSV fetch failed: HTTP {resp.status}")
                return await resp.text(encoding="utf-8")
    except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
        raise FetchFailed(f"CSV fetch failed: {e.__class__.__name__}: {e}") from e


# ── Cache ────────────────────────────────────────────────────────────────────

class CacheState(str, Enum):
    EMPTY      = "empty"
    LOADING    = "loading"
    READY      = "ready"
    REFRESHING = "refreshing"


class RefreshStatus(str, Enum):
    NOT_CONFIGURED = "not_configured"
    RELOADED       = "reloaded"
    KEPT_STALE     = "kept_stale"
    FAILED         = "failed"


@dataclass(frozen=True)
class RefreshResult:
    dataset: str
    status:  RefreshStatus
    reason:  str = ""
    rows:    int = 0


class DatasetCache:
    """
    Per-dataset in-memory store.

    `sources` maps dataset name -> URL or path (None/empty = not configured).
    `ttl_s` is one TTL in seconds for every dataset, a dict of per-dataset
    TTLs, or None for manual refresh only. `fetcher` and `clock` exist so
    tests can swap in stubs.
    """

    def __init__(self, sources: dict, ttl_s=DEFAULT_TTL_S, fetcher=None,
                 clock=time.time, timeout_s: float = DEFAULT_TIMEOUT_S):
        self.sources = dict(sources)
        self.ttl_s = ttl_s
        self.timeout_s = timeout_s
        self._fetcher = fetcher or self._fetch_default
        self._clock = clock
        self._datasets: dict[str, Dataset] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    async def _fetch_default(self, locator: str) -> str:
        return await fetch_text(locator, self.timeout_s)

    # ── Introspection ────────────────────────────────────────────────────────

    def is_configured(self, name: str) -> bool:
        return bool(self.sources.get(name))

    def configured(self) -> list[str]:
        return [n for n in self.sources if self.is_configured(n)]

    def current(self, name: str) -> Dataset | None:
        return self._datasets.get(name)

    def state(self, name: str) -> CacheState:
        loading = name in self._inflight
        if name in self._datasets:
            return CacheState.REFRESHING if loading else CacheState.READY
        return CacheState.LOADING if loading else CacheState.EMPTY

    def _ttl_for(self, name: str):
        if isinstance(self.ttl_s, dict):
            return self.ttl_s.get(name, DEFAULT_TTL_S)
        return self.ttl_s

    def is_expired(self, ds: Dataset) -> bool:
        ttl = self._ttl_for(ds.name)
        if not ttl:
            return False
        return self._clock() - ds.loaded_at >= ttl

    def _locator(self, name: str) -> str:
        locator = self.sources.get(name)
        if not locator:
            raise ConfigurationMissing(f"No source URL configured for the {name} dataset.")
        return locator

    # ── Loading ──────────────────────────────────────────────────────────────

    async def _fetch_and_replace(self, name: str) -> Dataset:
        locator = self._locator(name)
        text = await self._fetcher(locator)
        try:
            ds = Dataset.from_text(name, locator, text, loaded_at=self._clock())
        except csv.Error as e:
            raise FetchFailed(f"Could not parse {name} CSV: {e}") from e
        # single assignment: readers see the old generation or the new one
        self._datasets[name] = ds
        log.info("Loaded %s: %d rows, %d columns", name, len(ds.records), len(ds.headers))
        missing = [f.value for f in ds.columns.missing()]
        if missing and ds.headers:
            log.debug("%s has no column for: %s", name, ", ".join(missing))
        return ds

    async def _load(self, name: str) -> Dataset:
        task = self._inflight.get(name)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_replace(name))
            self._inflight[name] = task

            def _done(t, n=name):
                if self._inflight.get(n) is t:
                    del self._inflight[n]

            task.add_done_callback(_done)
        return await task

    async def ensure(self, name: str, force: bool = False) -> Dataset:
        """Current data for `name`, fetching when empty, expired or forced."""
        self._locator(name)
        current = self._datasets.get(name)
        if current is not None and not force and not self.is_expired(current):
            return current
        try:
            return await self._load(name)
        except FetchFailed as e:
            stale = self._datasets.get(name)
            if stale is not None and stale.records:
                log.warning("Reload of %s failed (%s); serving data from %s",
                            name, e, stale.as_of.isoformat())
                return stale
            raise

    async def refresh(self, name: str) -> RefreshResult:
        """Forced reload. Never raises for fetch problems; reports them instead."""
        if not self.is_configured(name):
            return RefreshResult(name, RefreshStatus.NOT_CONFIGURED, "no source configured")
        before = self._datasets.get(name)
        try:
            ds = await self._load(name)
        except FetchFailed as e:
            if before is not None and before.records:
                log.warning("Refresh of %s failed, keeping cached copy: %s", name, e)
                return RefreshResult(name, RefreshStatus.KEPT_STALE, str(e), len(before.records))
            log.error("Refresh of %s failed with nothing cached: %s", name, e)
            return RefreshResult(name, RefreshStatus.FAILED, str(e))
        return RefreshResult(name, RefreshStatus.RELOADED, rows=len(ds.records))

    async def refresh_all(self) -> list[RefreshResult]:
        names = list(self.sources) or list(DATASETS)
        return list(await asyncio.gather(*(self.refresh(n) for n in names)))

    async def warm_up(self) -> list[RefreshResult]:
        """Load everything configured so the first user doesn't pay the fetch."""
        results = await self.refresh_all()
        for r in results:
            if r.status is RefreshStatus.FAILED:
                log.error("Warm-up of %s failed: %s", r.dataset, r.reason)
        return results
