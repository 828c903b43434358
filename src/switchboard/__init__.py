"""Switchboard - routing and handoff coordination for specialist agents.

Selects which agent persona handles a task, drives each invocation through
the Analyze -> Assess -> Recommend -> Deliver pipeline, and moves handoff
payloads between agents when one agent's findings call for another.

Example:
    from switchboard.agents import load_registry
    from switchboard.dispatch import Dispatcher
    from switchboard.routing import Task

    dispatcher = Dispatcher(load_registry(), backend)
    result = await dispatcher.run(Task.user_request({"has_diff": True}))
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
