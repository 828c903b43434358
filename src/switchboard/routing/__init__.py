"""Task routing: trigger matching, handoff payloads and the handoff queue."""

from switchboard.routing.matcher import TriggerMatcher
from switchboard.routing.models import HandoffPayload, Task, new_task_id
from switchboard.routing.queue import HandoffQueue

__all__ = [
    "HandoffPayload",
    "HandoffQueue",
    "Task",
    "TriggerMatcher",
    "new_task_id",
]
