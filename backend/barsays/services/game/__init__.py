"""Game domain services: the Simon session state machine and its parts.

This package contains pure domain logic (no Flask imports) that HTTP
routes and socket handlers drive, keeping transport concerns separated
from core game mechanics. ``scheduler`` is the one module that bridges
to Flask-SocketIO.
"""

from .rooms import RoomManager

rooms = RoomManager()
