"""Transfer favorites between Tidal, Qobuz and Spotify accounts."""

__version__ = "2.2.0"
