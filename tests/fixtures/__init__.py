"""Test fixtures for axle-server."""

from tests.fixtures.factories import (
    TODAY,
    StubProvider,
    at,
    make_connection,
    make_profile,
    make_report,
    make_workout,
)

__all__ = [
    "TODAY",
    "StubProvider",
    "at",
    "make_connection",
    "make_profile",
    "make_report",
    "make_workout",
]
