"""
Planpoker - Planning poker room engine

Participants join a shared room by a short code, cast hidden votes from a
fixed card set and reveal or reset rounds together. The package provides:
- A pure room mutation engine
- A key-value room store adapter
- Real-time notification of room changes
- A REST/WebSocket API and an operator CLI
"""

__version__ = "0.1.0"
