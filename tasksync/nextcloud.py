#!/usr/bin/env python
"""
The Nextcloud backend: task lists are calendars in the user's CalDAV
calendar home, tasks are VTODO resources in them, and public links go
through the OCS sharing API.

``new(config)`` is the entry point.  It validates the settings and
resolves the server URL up front, so a bad configuration fails before
any request is made.  The backend holds no state besides the pooled
HTTP client; every operation is a fresh round trip.
"""
import dataclasses
import logging
from datetime import datetime
from datetime import timezone
from typing import List
from typing import Optional
from urllib.parse import unquote
from urllib.parse import urlparse

from tasksync.backend import find_list_by_name
from tasksync.backend import generate_id
from tasksync.backend import ListPublisher
from tasksync.backend import ListSharer
from tasksync.backend import ListSubscriber
from tasksync.backend import Share
from tasksync.backend import Task
from tasksync.backend import TaskList
from tasksync.backend import TaskManager
from tasksync.backend import TaskStatus
from tasksync.collection import Calendar
from tasksync.collection import CalendarSet
from tasksync.config import Config
from tasksync.config import resolve_base_url
from tasksync.davclient import DAVClient
from tasksync.lib import error
from tasksync.lib.url import URL
from tasksync.sharing import ShareClient

log = logging.getLogger("tasksync")

DAV_ROOT = "/remote.php/dav/"


def _not_supported(what: str) -> error.NotSupportedError:
    return error.NotSupportedError(reason="%s is not supported via CalDAV" % what)


class NextcloudBackend(TaskManager, ListPublisher, ListSubscriber, ListSharer):
    """
    Args:
        config: connection settings
        client: a ready DAVClient, mostly for testing.  One is built
            from the config if not given.
    """

    def __init__(self, config: Config, client: Optional[DAVClient] = None) -> None:
        self.config = config
        self.base_url = resolve_base_url(config)
        if config.insecure_skip_verify:
            log.warning("TLS certificate validation is disabled for %s", self.base_url)
        self.client = client or DAVClient(
            self.base_url,
            username=config.username,
            password=config.password,
            ssl_verify_cert=not config.insecure_skip_verify,
        )
        self.calendar_home = CalendarSet(self.client, URL(self.base_url))
        self.root_url = self._root_url(self.base_url)
        self.shares = ShareClient(self.client, self.root_url)

    def __repr__(self) -> str:
        return "NextcloudBackend(%s)" % self.base_url

    def __enter__(self) -> "NextcloudBackend":
        return self

    def __exit__(self, exc_type=None, exc_value=None, traceback=None) -> None:
        self.close()

    @staticmethod
    def _root_url(base_url: str) -> URL:
        """The server URL the DAV tree hangs below, i.e. https://host/nextcloud"""
        parsed = urlparse(base_url)
        prefix = parsed.path.split(DAV_ROOT, 1)[0].rstrip("/")
        return URL("%s://%s%s" % (parsed.scheme, parsed.netloc, prefix))

    def close(self) -> None:
        self.client.close()

    def _calendar(self, list_id: str) -> Calendar:
        return self.calendar_home.calendar(list_id)

    def _calendar_path(self, list_id: str) -> str:
        """Path of a calendar relative to the server root, as OCS wants it"""
        path = unquote(self._calendar(list_id).url.path)
        root_path = unquote(self.root_url.path or "")
        if root_path and path.startswith(root_path):
            path = path[len(root_path) :]
        return path.rstrip("/")

    # Lists

    def get_lists(self, timeout: Optional[float] = None) -> List[TaskList]:
        return [
            calendar.to_task_list()
            for calendar in self.calendar_home.calendars(timeout=timeout)
        ]

    def get_list(self, list_id: str, timeout: Optional[float] = None) -> Optional[TaskList]:
        for task_list in self.get_lists(timeout=timeout):
            if task_list.id == list_id:
                return task_list
        return None

    def get_list_by_name(
        self, name: str, timeout: Optional[float] = None
    ) -> Optional[TaskList]:
        return find_list_by_name(self.get_lists(timeout=timeout), name)

    def create_list(self, name: str) -> TaskList:
        raise _not_supported("creating calendars")

    def update_list(self, task_list: TaskList) -> TaskList:
        raise _not_supported("updating calendars")

    def delete_list(self, list_id: str) -> None:
        raise _not_supported("deleting calendars")

    def get_deleted_lists(self) -> List[TaskList]:
        return []

    def get_deleted_list_by_name(self, name: str) -> Optional[TaskList]:
        return None

    def restore_list(self, list_id: str) -> None:
        raise _not_supported("restoring calendars")

    def permanently_delete_list(self, list_id: str) -> None:
        raise _not_supported("purging calendars")

    # Tasks

    def get_tasks(self, list_id: str, timeout: Optional[float] = None) -> List[Task]:
        return self._calendar(list_id).tasks(timeout=timeout)

    def get_task(
        self, list_id: str, task_id: str, timeout: Optional[float] = None
    ) -> Optional[Task]:
        for task in self.get_tasks(list_id, timeout=timeout):
            if task.id == task_id:
                return task
        return None

    def create_task(self, list_id: str, task: Task, timeout: Optional[float] = None) -> Task:
        """
        Stores a new task and returns it with id, timestamps and list set.
        A task whose id already exists on the server overwrites it, which
        makes replaying a create safe.
        """
        now = datetime.now(timezone.utc).replace(microsecond=0)
        new_task = dataclasses.replace(
            task,
            id=task.id or generate_id(),
            status=task.status or TaskStatus.NEEDS_ACTION,
            created=now,
            modified=now,
            list_id=list_id,
        )
        self._calendar(list_id).save_task(new_task, timeout=timeout)
        return new_task

    def update_task(self, list_id: str, task: Task, timeout: Optional[float] = None) -> Task:
        if not task.id:
            raise ValueError("cannot update a task without id")
        updated = dataclasses.replace(
            task,
            modified=datetime.now(timezone.utc).replace(microsecond=0),
            list_id=list_id,
        )
        self._calendar(list_id).save_task(updated, timeout=timeout)
        return updated

    def delete_task(
        self, list_id: str, task_id: str, timeout: Optional[float] = None
    ) -> None:
        self._calendar(list_id).delete_task(task_id, timeout=timeout)

    # Publishing

    def publish_list(self, list_id: str, timeout: Optional[float] = None) -> str:
        return self.shares.publish(self._calendar_path(list_id), timeout=timeout)

    def unpublish_list(self, list_id: str, timeout: Optional[float] = None) -> None:
        self.shares.unpublish(self._calendar_path(list_id), timeout=timeout)

    # Subscriptions

    def subscribe_list(self, url: str, timeout: Optional[float] = None) -> TaskList:
        return self.calendar_home.subscribe(url, timeout=timeout).to_task_list()

    def unsubscribe_list(self, list_id: str, timeout: Optional[float] = None) -> None:
        self.calendar_home.unsubscribe(list_id, timeout=timeout)

    # Sharing with users

    def share_list(
        self,
        list_id: str,
        user: str,
        permission: str = "read",
        timeout: Optional[float] = None,
    ) -> None:
        self.shares.share_with_user(
            self._calendar(list_id).url, user, permission, timeout=timeout
        )

    def unshare_list(self, list_id: str, user: str, timeout: Optional[float] = None) -> None:
        self.shares.unshare_with_user(self._calendar(list_id).url, user, timeout=timeout)

    def list_shares(self, list_id: str, timeout: Optional[float] = None) -> List[Share]:
        return self.shares.shares(self._calendar_path(list_id), timeout=timeout)


def new(config: Optional[Config] = None, **kwargs) -> NextcloudBackend:
    """
    Builds a backend from a Config, or from keyword arguments matching
    the Config fields.

    Raises:
        ConfigurationError: on missing host, username or password
    """
    if config is None:
        config = Config(**kwargs)
    elif kwargs:
        config = dataclasses.replace(config, **kwargs)
    return NextcloudBackend(config)
