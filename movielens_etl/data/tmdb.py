"""Rate-limited, cached TMDB client for movie metadata enrichment."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import requests

from movielens_etl.config import (
    MAX_CAST,
    TMDB_BASE_URL,
    TMDB_IMAGE_BASE,
    TMDB_PROFILE_BASE,
    TMDB_REQUESTS_PER_SECOND,
    TMDB_TIMEOUT_SECONDS,
)


class EnrichmentError(Exception):
    """A TMDB lookup failed in a way that should not be cached."""


@dataclass(frozen=True)
class CastMember:
    name: str
    profile_url: str | None = None

    def to_doc(self) -> dict:
        doc = {"name": self.name}
        if self.profile_url:
            doc["profileUrl"] = self.profile_url
        return doc


@dataclass(frozen=True)
class ExternalData:
    """TMDB metadata for one movie. Absent fields are None, not zero."""

    fetched: bool
    overview: str | None = None
    poster_url: str | None = None
    cast: tuple[CastMember, ...] = ()
    director: str | None = None
    runtime: int | None = None
    budget: int | None = None
    revenue: int | None = None

    def to_doc(self) -> dict:
        doc: dict = {}
        if self.poster_url:
            doc["posterUrl"] = self.poster_url
        if self.overview:
            doc["overview"] = self.overview
        if self.cast:
            doc["cast"] = [member.to_doc() for member in self.cast]
        if self.director:
            doc["director"] = self.director
        for name in ("runtime", "budget", "revenue"):
            value = getattr(self, name)
            if value is not None:
                doc[name] = value
        doc["tmdbFetched"] = self.fetched
        return doc


NOT_FOUND = ExternalData(fetched=False)


class RateLimiter:
    """Hands out one token per ``1 / requests_per_second`` seconds, globally.

    Callers reserve the next free slot under a lock and sleep outside it, so
    any number of waiting threads still produce an evenly spaced stream of
    requests with no bursts.
    """

    def __init__(
        self,
        requests_per_second: float = TMDB_REQUESTS_PER_SECOND,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.interval = 1.0 / requests_per_second
        self._clock = clock
        self._sleep = sleep
        self._next_slot: float | None = None
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            self._sleep(delay)


def _optional_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_credits(credits: dict, max_cast: int = MAX_CAST) -> tuple[tuple[CastMember, ...], str | None]:
    """Extract the billed cast (first ``max_cast``) and the first listed director.

    Raises:
        TypeError, KeyError: if the payload does not have the expected shape.
    """
    cast_list = credits.get("cast") or []
    crew_list = credits.get("crew") or []
    if not isinstance(cast_list, list) or not isinstance(crew_list, list):
        raise TypeError("credits cast/crew must be lists")

    cast = []
    for member in cast_list[:max_cast]:
        profile_path = member.get("profile_path")
        cast.append(CastMember(
            name=member["name"],
            profile_url=f"{TMDB_PROFILE_BASE}{profile_path}" if profile_path else None,
        ))

    director = None
    for member in crew_list:
        if member.get("job") == "Director":
            director = member.get("name")
            break

    return tuple(cast), director


class TMDBClient:
    """Fetches movie details plus credits for a TMDB id, at most once per id.

    One instance owns the HTTP session, the rate limiter and the cache and
    is shared by every worker thread. Cache reads are plain dict lookups;
    writes go through a lock and the first record stored for an id is kept.
    """

    def __init__(
        self,
        api_key: str,
        requests_per_second: float = TMDB_REQUESTS_PER_SECOND,
        session: requests.Session | None = None,
        rate_limiter: RateLimiter | None = None,
        timeout: float = TMDB_TIMEOUT_SECONDS,
        base_url: str = TMDB_BASE_URL,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter(requests_per_second)
        self.timeout = timeout
        self.base_url = base_url
        self._cache: dict[str, ExternalData] = {}
        self._cache_lock = threading.Lock()

    def _tmdb_get(self, endpoint: str) -> requests.Response:
        """Make a rate-limited GET request to the TMDB API."""
        self.rate_limiter.acquire()
        return self.session.get(
            f"{self.base_url}{endpoint}",
            params={"api_key": self.api_key},
            timeout=self.timeout,
        )

    def cached(self, tmdb_id: str) -> ExternalData | None:
        return self._cache.get(tmdb_id)

    def cache_size(self) -> int:
        return len(self._cache)

    def _store(self, tmdb_id: str, data: ExternalData) -> ExternalData:
        with self._cache_lock:
            return self._cache.setdefault(tmdb_id, data)

    def fetch_movie_data(self, tmdb_id: str) -> ExternalData:
        """Return TMDB metadata for ``tmdb_id``, from cache when possible.

        A 404 on the details call is a normal outcome: a record with
        ``fetched=False`` is cached and returned. A failing credits call only
        drops cast and director.

        Raises:
            EnrichmentError: on transport failure, a non-200/404 status or an
                undecodable details payload. Nothing is cached.
        """
        cached = self._cache.get(tmdb_id)
        if cached is not None:
            return cached

        try:
            resp = self._tmdb_get(f"/movie/{tmdb_id}")
        except requests.RequestException as e:
            raise EnrichmentError(f"error fetching movie details for {tmdb_id}: {e}") from e

        if resp.status_code == 404:
            return self._store(tmdb_id, NOT_FOUND)
        if resp.status_code != 200:
            raise EnrichmentError(f"TMDB API returned status {resp.status_code} for {tmdb_id}")

        try:
            details = resp.json()
        except ValueError as e:
            raise EnrichmentError(f"error decoding movie response for {tmdb_id}: {e}") from e
        if not isinstance(details, dict):
            raise EnrichmentError(f"unexpected movie response for {tmdb_id}")

        cast, director = self._fetch_credits(tmdb_id)

        poster_path = details.get("poster_path")
        data = ExternalData(
            fetched=True,
            overview=details.get("overview") or None,
            poster_url=f"{TMDB_IMAGE_BASE}{poster_path}" if poster_path else None,
            cast=cast,
            director=director,
            runtime=_optional_int(details.get("runtime")),
            budget=_optional_int(details.get("budget")),
            revenue=_optional_int(details.get("revenue")),
        )
        return self._store(tmdb_id, data)

    def _fetch_credits(self, tmdb_id: str) -> tuple[tuple[CastMember, ...], str | None]:
        try:
            resp = self._tmdb_get(f"/movie/{tmdb_id}/credits")
            if resp.status_code != 200:
                return (), None
            credits = resp.json()
            if not isinstance(credits, dict):
                return (), None
            return parse_credits(credits)
        except (requests.RequestException, ValueError, TypeError, KeyError, AttributeError):
            # Credits are optional; keep the details we already have.
            return (), None
