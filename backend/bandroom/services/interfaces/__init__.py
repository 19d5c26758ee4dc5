"""
Service interfaces for dependency inversion.
Allows swapping lock implementations without changing scheduling logic.
"""

from .locks import ResourceLocks, instrument_key, meeting_key, room_key
from .local_locks import LocalResourceLocks

__all__ = ['ResourceLocks', 'LocalResourceLocks', 'instrument_key', 'meeting_key', 'room_key']
