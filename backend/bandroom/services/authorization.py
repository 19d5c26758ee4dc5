"""
Authorization overlay: the capability predicates every mutating operation
consults before touching state.

Predicates are pure functions of (actor, resource). `ensure` turns a failed
predicate into a ForbiddenError; nothing here ever downgrades a request to a
weaker one.
"""

from bandroom.core.exceptions import ForbiddenError
from bandroom.core.security import Actor
from bandroom.models.reservation import Reservation


def can_manage_catalog(actor: Actor) -> bool:
    return actor.is_admin


def can_return_reservation(actor: Actor, reservation: Reservation) -> bool:
    return actor.is_admin or actor.id == reservation.user_id


def can_delete_reservation(actor: Actor) -> bool:
    return actor.is_admin


def can_list_all(actor: Actor) -> bool:
    return actor.is_admin


def can_mutate_meeting_status(actor: Actor) -> bool:
    return actor.is_admin


def can_delete_meeting(actor: Actor) -> bool:
    return actor.is_admin


def can_join_or_quit(actor: Actor) -> bool:
    # Any authenticated member; role plays no part
    return actor is not None


def ensure(allowed: bool, message: str, **context) -> None:
    if not allowed:
        raise ForbiddenError(message, **context)
