"""
Execution machinery: the recorder queue, its sessions, step recording
and the effect combinators built on top of them.
"""

from pyrecorder.executor.task import Task, TaskKind
from pyrecorder.executor.session import Session, SessionManager
from pyrecorder.executor.recorder import Recorder
from pyrecorder.executor.record import record_step, retry_step
from pyrecorder.executor.effects import hope_that, retry_to, try_to

__all__ = [
    "Task",
    "TaskKind",
    "Session",
    "SessionManager",
    "Recorder",
    "record_step",
    "retry_step",
    "try_to",
    "retry_to",
    "hope_that",
]
