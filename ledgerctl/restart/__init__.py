"""Staggered restart coordination."""

from ledgerctl.restart.config_store import RECORD_KEY, RestartConfigStore
from ledgerctl.restart.stagger import StaggeredRestartService

__all__ = ["RECORD_KEY", "RestartConfigStore", "StaggeredRestartService"]
