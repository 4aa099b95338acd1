"""Pipeline package: the crowd analysis session."""

from .session import CrowdAnalysisSession

__all__ = ["CrowdAnalysisSession"]
