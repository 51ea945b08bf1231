"""TeamPulse - Team Retrospective Insight Generator.

TeamPulse turns raw activity from issue trackers, chat and code hosting into
retrospective insights: what went well, what didn't, and what to do next.

Core principles:
- Deterministic-First: rule-based heuristics always run, the model is optional
- Degrade, don't fail: any single source or the model path may fail
- Privacy: activity data is sanitized before it leaves the process
- Tool Agnosticism: model providers are pluggable through a registry
"""

__version__ = "0.1.0"
__author__ = "TeamPulse Contributors"
