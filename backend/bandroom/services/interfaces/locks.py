"""
Scoped resource lock interface.

Every mutating scheduling operation runs its check-then-write (including the
commit) while holding an exclusive lock on the resource it contends for:

    instrument:<id>          reserve / return / delete reservation
    room:<ROOM>:<YYYY-MM-DD> create meeting, reactivate meeting
    meeting:<id>             join / quit / status change / delete

Implementations:
- LocalResourceLocks: asyncio locks, correct within one process
- RedisResourceLocks: Redis locks shared by every worker, falls back to local
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncContextManager


def instrument_key(instrument_id: int) -> str:
    return f"instrument:{instrument_id}"


def room_key(room: str, day: date) -> str:
    return f"room:{room}:{day.isoformat()}"


def meeting_key(meeting_id: int) -> str:
    return f"meeting:{meeting_id}"


class ResourceLocks(ABC):

    @abstractmethod
    def hold(self, *keys: str) -> AsyncContextManager[None]:
        """
        Hold exclusive locks on all `keys` for the duration of the block.

        Keys are acquired in sorted order so overlapping multi-key holds cannot
        deadlock. Raises ResourceBusyError if a key cannot be acquired within
        the configured timeout; every key already held is released first.
        """
