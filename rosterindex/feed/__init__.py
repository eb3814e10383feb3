from .statsapi import StatsApiClient, season_range, player_entities, team_entities

__all__ = ["StatsApiClient", "season_range", "player_entities", "team_entities"]
