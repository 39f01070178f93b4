"""Converge AWS ElastiCache and App Runner resources to a declared state."""

__version__ = "0.1.0"
