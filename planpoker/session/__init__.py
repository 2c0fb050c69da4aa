"""
Session Module - Admin session history.

A session is the lifetime of one room created by an authenticated admin:
- Started when the admin creates the room
- Updated as players join and rounds are reset
- Ended when the last player leaves and the room is deleted

Ordinary players are never authenticated and never tracked here.
"""

from .history import SessionHistory, SessionRecord, AnalyticsSummary

__all__ = [
    "SessionHistory",
    "SessionRecord",
    "AnalyticsSummary",
]
