"""Enums shared by domain models and database records."""

from enum import Enum


class AttemptState(Enum):
    """Lifecycle states of a single assessment attempt.

    PERSISTED and ABORTED are terminal.
    """

    RECEIVED = "RECEIVED"
    DEFINITION_RESOLVED = "DEFINITION_RESOLVED"
    CREDENTIAL_ACQUIRED = "CREDENTIAL_ACQUIRED"
    UNITS_LOADED = "UNITS_LOADED"
    EXECUTING = "EXECUTING"
    SCORED = "SCORED"
    PERSISTED = "PERSISTED"
    ABORTED = "ABORTED"


class AttemptStatus(Enum):
    """Discriminator for stored attempt records."""

    SCORED = "SCORED"
    ABORTED = "ABORTED"


class UnitFormat(Enum):
    """Supported check unit artifact formats, selected by file suffix."""

    SCRIPT = "script"
    DECLARATIVE = "declarative"

    @classmethod
    def from_ref(cls, unit_ref: str) -> "UnitFormat | None":
        lowered = unit_ref.lower()
        if lowered.endswith(".py"):
            return cls.SCRIPT
        if lowered.endswith(".json"):
            return cls.DECLARATIVE
        return None
