"""
Entity feed backed by the MLB Stats API.

The feed only turns remote payloads into (raw name, entity id, aux flag)
triples for the index builder. Everything is fetched before a build starts,
so a failed request never leaves a half-built index behind.
"""
import logging
from datetime import date
from typing import Any, Iterable, Optional

import requests

from ..config import DEFAULT_API_BASE, DEFAULT_TIMEOUT
from ..core.exceptions import FeedError
from ..storage import Entity

logger = logging.getLogger(__name__)

START_SEASON = 1876

PITCHER_FLAG = "p"
HITTER_FLAG = "h"

# league id -> flag
LEAGUE_FLAGS = {103: "a", 104: "n"}
OTHER_LEAGUE_FLAG = "-"


def season_range(all_time: bool = False, today: Optional[date] = None) -> range:
    """Seasons to enumerate: the current one, or every season since 1876."""
    current = (today or date.today()).year
    return range(START_SEASON if all_time else current, current + 1)


def player_entities(payload: dict[str, Any]) -> list[Entity]:
    """
    Map a ``/sports/1/players`` payload to builder triples.

    The raw name is the player's ``nameSlug`` ("babe-ruth-121578"); the
    builder strips the trailing id when it derives the base key.
    """
    entities = []
    try:
        for person in payload["people"]:
            position = (person.get("primaryPosition") or {}).get("abbreviation")
            flag = PITCHER_FLAG if position == "P" else HITTER_FLAG
            entities.append((person["nameSlug"], int(person["id"]), flag))
    except (KeyError, TypeError, ValueError) as e:
        raise FeedError(f"Unexpected players payload: {e!r}") from e
    return entities


def team_entities(payload: dict[str, Any]) -> list[Entity]:
    """Map a ``/teams`` payload to builder triples keyed by team abbreviation."""
    entities = []
    try:
        for team in payload["teams"]:
            league_id = (team.get("league") or {}).get("id")
            flag = LEAGUE_FLAGS.get(league_id, OTHER_LEAGUE_FLAG)
            entities.append((team["abbreviation"], int(team["id"]), flag))
    except (KeyError, TypeError, ValueError) as e:
        raise FeedError(f"Unexpected teams payload: {e!r}") from e
    return entities


class StatsApiClient:
    """Small synchronous client for the Stats API endpoints the indexes need."""

    def __init__(self, base_url: str = DEFAULT_API_BASE, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as e:
            raise FeedError(f"Failed to fetch {url}: {e}") from e

    def players(self, seasons: Iterable[int]) -> list[Entity]:
        """
        Fetch every player of the given seasons.

        Players appear once per season they played; the builder collapses
        repeated (name, id) pairs.

        Raises:
            FeedError: If any season cannot be fetched or parsed
        """
        entities: list[Entity] = []
        for season in seasons:
            season_entities = player_entities(self._get("sports/1/players", {"season": season}))
            logger.info("Fetched %d players for season %d", len(season_entities), season)
            entities.extend(season_entities)
        return entities

    def teams(self) -> list[Entity]:
        """Fetch the current MLB teams."""
        entities = team_entities(self._get("teams", {"sportId": 1}))
        logger.info("Fetched %d teams", len(entities))
        return entities
