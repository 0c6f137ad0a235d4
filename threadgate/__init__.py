"""threadgate - quality gate and idempotent publisher for market-flow threads."""

__version__ = "0.1.0"
