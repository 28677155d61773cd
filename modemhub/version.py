"""Version information for modemhub."""

__version__ = "0.1.0"
