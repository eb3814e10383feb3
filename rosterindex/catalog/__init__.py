from .roster_catalog import RosterCatalog, LookupResult

__all__ = ["RosterCatalog", "LookupResult"]
