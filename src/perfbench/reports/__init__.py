"""Report rendering for perfbench."""

from .generator import ReportBuilder, collect_environment

__all__ = [
    "ReportBuilder",
    "collect_environment",
]
