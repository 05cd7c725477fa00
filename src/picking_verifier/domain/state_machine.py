"""Order Session Phase Machine.

Uses python-statemachine to enforce which operations are legal for the
current phase of the single active order. No matter what the HTTP layer
asks for, an illegal operation (e.g. finalize with nothing loaded) will
raise TransitionNotAllowed before any remote call is made.

The machine is instantiated per-operation from the phase derived from the
OrderSession, which stays the only stored state. The workflow fires the
entry event before an operation and the matching exit event after it.

Transition table:
    EMPTY       -> LOADING      (begin_load)
    LOADED      -> LOADING      (begin_load)
    LOADING     -> LOADED       (load_succeeded)
    LOADING     -> EMPTY        (load_failed, nothing was loaded before)
    LOADING     -> LOADED       (reload_failed, the previous order stays)
    LOADED      -> LOADED       (scan)
    LOADED      -> FINALIZING   (begin_finalize)
    FINALIZING  -> EMPTY        (finalize_succeeded)
    FINALIZING  -> LOADED       (finalize_failed)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class SessionPhaseMachine(StateMachine):
    """State machine that guards the order session lifecycle.

    Usage:
        sm = SessionPhaseMachine(current_phase="LOADED")
        sm.scan()           # stays LOADED
        sm.begin_finalize() # transitions to FINALIZING
    """

    # --- States ---
    EMPTY = State("EMPTY", initial=True)
    LOADING = State("LOADING")
    LOADED = State("LOADED")
    FINALIZING = State("FINALIZING")

    # --- Events / Transitions ---

    # Loading
    begin_load = EMPTY.to(LOADING) | LOADED.to(LOADING)
    load_succeeded = LOADING.to(LOADED)
    load_failed = LOADING.to(EMPTY)
    reload_failed = LOADING.to(LOADED)

    # Scanning
    scan = LOADED.to.itself()

    # Finalizing
    begin_finalize = LOADED.to(FINALIZING)
    finalize_succeeded = FINALIZING.to(EMPTY)
    finalize_failed = FINALIZING.to(LOADED)

    def __init__(self, current_phase: str = "EMPTY") -> None:
        """Initialize the state machine at a given phase.

        Args:
            current_phase: The current SessionPhase value (e.g., "LOADED").
        """
        valid_values = {s.value for s in self.states}
        if current_phase not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown phase '{current_phase}'. Valid phases: {valid}"
            )
        super().__init__(start_value=current_phase)

    @property
    def phase(self) -> str:
        """Return the current state value as a string (matches SessionPhase enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current phase."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_phase: str, event_name: str) -> str:
    """Validate an operation against the phase machine and return the new phase.

    Args:
        current_phase: Current SessionPhase value.
        event_name: The event to fire (e.g., "begin_finalize").

    Returns:
        The phase string after the transition.

    Raises:
        TransitionNotAllowed: If the operation is illegal in this phase.
        ValueError: If the phase or event name is invalid.
    """
    sm = SessionPhaseMachine(current_phase=current_phase)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_phase}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.phase
