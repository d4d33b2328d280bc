"""
Closed role set and the capabilities each role grants.

Every Role member must appear in ROLE_CAPABILITIES; an import-time check
keeps the table exhaustive when a role is added.
"""

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    NTC = "ntc"
    BUS_OWNER = "bus-owner"
    COMMUTER = "commuter"


class Capability(str, Enum):
    SCHEDULE_TRIPS = "schedule_trips"
    VIEW_TRIP_BOOKINGS = "view_trip_bookings"
    SEARCH_TRIPS = "search_trips"
    BOOK_SEATS = "book_seats"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    # Admin and NTC manage users, routes and buses, none of which go through
    # the scheduling/booking core.
    Role.ADMIN: frozenset(),
    Role.NTC: frozenset(),
    Role.BUS_OWNER: frozenset({
        Capability.SCHEDULE_TRIPS,
        Capability.VIEW_TRIP_BOOKINGS,
    }),
    Role.COMMUTER: frozenset({
        Capability.SEARCH_TRIPS,
        Capability.BOOK_SEATS,
    }),
}

_missing = set(Role) - set(ROLE_CAPABILITIES)
if _missing:
    raise RuntimeError(f"ROLE_CAPABILITIES is missing roles: {sorted(r.value for r in _missing)}")


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES[role]
