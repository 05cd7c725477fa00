"""Domain enumerations for the picking verifier.

These enums define the canonical phases, event kinds and remote situation
codes used throughout the system. They are framework-agnostic (no FastAPI,
no httpx imports).
"""

import enum


class SessionPhase(enum.StrEnum):
    """Lifecycle phases of the single active order session.

    The phase is derived from the session, never stored directly.
    See domain/state_machine.py for the transition table.
    """

    EMPTY = "EMPTY"
    LOADING = "LOADING"
    LOADED = "LOADED"
    FINALIZING = "FINALIZING"


class EventKind(enum.StrEnum):
    """Kinds of events fanned out to live monitor subscribers."""

    CONNECTED = "CONNECTED"
    LOADED = "LOADED"
    SCAN = "SCAN"
    FINALIZED = "FINALIZED"
    FINALIZED_TIMEOUT = "FINALIZED_TIMEOUT"
    FINALIZED_ASYNC = "FINALIZED_ASYNC"


class FinalizeResult(enum.StrEnum):
    """How a finalize attempt ended from the caller's point of view.

    PROBABLE_* outcomes are successes carrying a warning: the remote side
    errored in a way consistent with having completed the work anyway.
    """

    VERIFIED = "VERIFIED"
    PROBABLE_TIMEOUT = "PROBABLE_TIMEOUT"
    PROBABLE_ASYNC = "PROBABLE_ASYNC"


class Situation(enum.IntEnum):
    """Fixed Bling situation ids for sales orders.

    The "Verified" id is account specific and lives in Settings.
    """

    OPEN = 6
    IN_PROGRESS = 15
