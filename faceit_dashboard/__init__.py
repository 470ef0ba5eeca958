"""FACEIT OAuth2 login and session gateway for the dashboard."""

__version__ = "1.0.0"
