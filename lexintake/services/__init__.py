from lexintake.services.state_machine import (
    InvalidTransitionError,
    TriageOutcome,
    advance,
    can_transition,
    check_invariants,
)
