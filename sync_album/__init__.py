"""sync_album – mirror public shared Google Photos albums into Immich."""

__version__ = "0.1.0"
