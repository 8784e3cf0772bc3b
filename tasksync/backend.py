"""
Domain model and backend interfaces.

The sync engine talks to every remote through the abstract classes in
this module.  ``TaskManager`` is the part every backend implements;
publishing, subscribing and sharing are split into narrower
interfaces so that backends without such a concept need not fake it.
"""

import uuid
from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from enum import Enum
from typing import Iterable
from typing import List
from typing import Optional


class TaskStatus(Enum):
    """Internal task states, mapped to iCalendar STATUS values by the codec"""

    NEEDS_ACTION = "TODO"
    COMPLETED = "DONE"
    IN_PROGRESS = "PROCESSING"
    CANCELLED = "CANCELLED"


class ShareType(Enum):
    USER = 0
    GROUP = 1
    PUBLIC_LINK = 3


@dataclass
class Task:
    """
    A single task.

    Attributes:
        id: stable identifier, also used as the remote resource name
            (``<id>.ics``).  Must not change once assigned.
        priority: 0-9, 0 meaning undefined
        categories: comma-joined tags
        list_id: the owning list
        parent_id: id of another task in the same list, if any
    """

    id: str = ""
    summary: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.NEEDS_ACTION
    priority: int = 0
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    completed: Optional[datetime] = None
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    categories: str = ""
    list_id: str = ""
    parent_id: Optional[str] = None


@dataclass
class TaskList:
    """
    A list of tasks, which on a CalDAV server is a calendar collection.

    ``modified`` is synthesized at discovery time since the protocol
    does not expose a collection modification time.  ``ctag`` is the
    server's change tag, kept for callers that want it.
    """

    id: str
    name: str = ""
    color: str = ""
    description: str = ""
    modified: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    ctag: Optional[str] = None
    supported_components: List[str] = field(default_factory=list)
    source_url: Optional[str] = None

    @property
    def read_only(self) -> bool:
        return self.source_url is not None


@dataclass
class Share:
    id: int
    path: str = ""
    share_type: ShareType = ShareType.PUBLIC_LINK
    token: str = ""
    url: str = ""


def generate_id() -> str:
    return str(uuid.uuid4())


def find_list_by_name(lists: Iterable[TaskList], name: str) -> Optional[TaskList]:
    """Case-insensitive lookup of a list by display name"""
    wanted = name.lower()
    for task_list in lists:
        if task_list.name.lower() == wanted:
            return task_list
    return None


class TaskManager(ABC):
    """
    Operations every task backend provides.

    Methods that talk to the remote take an optional ``timeout`` in
    seconds, bounding each request they make.  None means the
    backend default.
    """

    @abstractmethod
    def get_lists(self, timeout: Optional[float] = None) -> List[TaskList]:
        pass

    @abstractmethod
    def get_list(self, list_id: str, timeout: Optional[float] = None) -> Optional[TaskList]:
        pass

    @abstractmethod
    def get_list_by_name(
        self, name: str, timeout: Optional[float] = None
    ) -> Optional[TaskList]:
        pass

    @abstractmethod
    def create_list(self, name: str) -> TaskList:
        pass

    @abstractmethod
    def update_list(self, task_list: TaskList) -> TaskList:
        pass

    @abstractmethod
    def delete_list(self, list_id: str) -> None:
        pass

    @abstractmethod
    def get_deleted_lists(self) -> List[TaskList]:
        pass

    @abstractmethod
    def get_deleted_list_by_name(self, name: str) -> Optional[TaskList]:
        pass

    @abstractmethod
    def restore_list(self, list_id: str) -> None:
        pass

    @abstractmethod
    def permanently_delete_list(self, list_id: str) -> None:
        pass

    @abstractmethod
    def get_tasks(self, list_id: str, timeout: Optional[float] = None) -> List[Task]:
        pass

    @abstractmethod
    def get_task(
        self, list_id: str, task_id: str, timeout: Optional[float] = None
    ) -> Optional[Task]:
        pass

    @abstractmethod
    def create_task(self, list_id: str, task: Task, timeout: Optional[float] = None) -> Task:
        pass

    @abstractmethod
    def update_task(self, list_id: str, task: Task, timeout: Optional[float] = None) -> Task:
        pass

    @abstractmethod
    def delete_task(
        self, list_id: str, task_id: str, timeout: Optional[float] = None
    ) -> None:
        pass

    def close(self) -> None:
        """Release whatever connections the backend holds"""
        pass


class ListPublisher(ABC):
    @abstractmethod
    def publish_list(self, list_id: str, timeout: Optional[float] = None) -> str:
        """Returns the public URL of the list"""
        pass

    @abstractmethod
    def unpublish_list(self, list_id: str, timeout: Optional[float] = None) -> None:
        pass


class ListSubscriber(ABC):
    @abstractmethod
    def subscribe_list(self, url: str, timeout: Optional[float] = None) -> TaskList:
        pass

    @abstractmethod
    def unsubscribe_list(self, list_id: str, timeout: Optional[float] = None) -> None:
        pass


class ListSharer(ABC):
    @abstractmethod
    def share_list(
        self,
        list_id: str,
        user: str,
        permission: str = "read",
        timeout: Optional[float] = None,
    ) -> None:
        pass

    @abstractmethod
    def unshare_list(self, list_id: str, user: str, timeout: Optional[float] = None) -> None:
        pass

    @abstractmethod
    def list_shares(self, list_id: str, timeout: Optional[float] = None) -> List[Share]:
        pass
