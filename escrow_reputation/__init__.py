"""Reputation, trust scoring and gamification for an escrow marketplace."""

__version__ = "0.1.0"
