"""Release version parsing and transition analysis."""

from ledgerctl.fabricversion.transition import analyze_transition
from ledgerctl.fabricversion.version import Version, get_major_release_version

__all__ = ["Version", "analyze_transition", "get_major_release_version"]
