"""Child process supervision for the managed server."""

from serverwarden.supervisor.process import ChildProcessHandle, ProcessSupervisor

__all__ = ["ChildProcessHandle", "ProcessSupervisor"]
