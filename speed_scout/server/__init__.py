"""speed_scout.server: HTTP surface for analysis proxying and report sharing."""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
