"""jobmatch: tiered job matching with AI scoring and rule-based fallback."""

__version__ = "0.1.0"
