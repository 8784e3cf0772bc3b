#!/usr/bin/env python
import logging

__version__ = "0.3.0"

from .backend import Task
from .backend import TaskList
from .backend import TaskStatus
from .config import Config
from .nextcloud import NextcloudBackend
from .nextcloud import new

## Silence notification of no default logging handler
log = logging.getLogger("tasksync")


class NullHandler(logging.Handler):
    def emit(self, record) -> None:
        pass


log.addHandler(NullHandler())

__all__ = [
    "__version__",
    "Config",
    "NextcloudBackend",
    "Task",
    "TaskList",
    "TaskStatus",
    "new",
]
