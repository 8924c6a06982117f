from groupname_sync.render import reverse_digits, render_name, should_update
from groupname_sync.orchestrator import (
    ReconciliationOrchestrator,
    ReconciliationRequest,
    ReconciliationOutcome,
    RunState,
    TriggerReason,
)

__all__ = [
    "reverse_digits",
    "render_name",
    "should_update",
    "ReconciliationOrchestrator",
    "ReconciliationRequest",
    "ReconciliationOutcome",
    "RunState",
    "TriggerReason",
]
