"""Task dispatch and handoff coordination."""

from switchboard.dispatch.dispatcher import Dispatcher, RunStatus

__all__ = ["Dispatcher", "RunStatus"]
