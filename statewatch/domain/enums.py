"""Controlled enumerations for the statewatch domain."""

from __future__ import annotations

from enum import Enum


class BinaryState(str, Enum):
    """The two canonical states of a binary entity (switch, sensor, light)."""

    ON = "on"
    OFF = "off"


class WatchMode(str, Enum):
    """Which timed transform a watch applies to the entity's state stream."""

    TRUE_FOR = "true_for"
    LIMIT_TRUE = "limit_true"
