#!/usr/bin/env python
"""
The two collection types the backend deals with: the ``CalendarSet``,
which is the calendar home of the user and holds the calendars, and
the ``Calendar``, which holds the tasks.  Neither keeps any state between
calls beyond its URL; every method is one round trip to the server.
"""
import logging
from datetime import datetime
from datetime import timezone
from typing import List
from typing import Optional
from urllib.parse import quote
from urllib.parse import unquote
from urllib.parse import urlparse

from tasksync.backend import Task
from tasksync.backend import TaskList
from tasksync.davclient import DAVClient
from tasksync.davclient import DAVResponse
from tasksync.lib import error
from tasksync.lib import vcal
from tasksync.lib.url import URL
from tasksync.protocol import xml_builders
from tasksync.protocol import xml_parsers
from tasksync.protocol.types import CalendarInfo

log = logging.getLogger("tasksync")

## Lists are exposed only if they can hold tasks
TASK_COMPONENT = "VTODO"
DEFAULT_SUBSCRIPTION_NAME = "subscription"


def raise_for_status(response: DAVResponse, method: str, url: str) -> None:
    """
    Raises the error matching a failed request: AuthorizationError for
    401/403 (a write to a subscription ends up here), otherwise the
    method's own error class.
    """
    if response.status in (401, 403):
        raise error.AuthorizationError(url=url, reason=response.reason or str(response.status))
    raise error.exception_by_method[method](url=url, reason=error.errmsg(response))


def derive_calendar_name(source_url: str) -> str:
    """
    Picks a calendar name from the last path segment of a URL, with the
    extension stripped.  ``https://example.com/cal/feed.ics`` gives
    ``feed``; a URL without a usable path gives "subscription".
    """
    path = urlparse(source_url).path.rstrip("/")
    segment = unquote(path.rsplit("/", 1)[-1]) if path else ""
    if "." in segment:
        segment = segment.rsplit(".", 1)[0]
    segment = segment.strip()
    return segment or DEFAULT_SUBSCRIPTION_NAME


def validate_source_url(source_url: str) -> None:
    parsed = urlparse(source_url or "")
    if not parsed.scheme or not parsed.netloc:
        raise ValueError("subscription url must be absolute, got %r" % source_url)


class Calendar:
    """
    One calendar collection.  The tasks live at ``<url><uid>.ics``.
    """

    def __init__(
        self,
        client: DAVClient,
        url: URL,
        id: str,
        info: Optional[CalendarInfo] = None,
        modified: Optional[datetime] = None,
    ) -> None:
        self.client = client
        self.url = URL.objectify(url)
        self.id = id
        self.info = info or CalendarInfo(href=self.url.path, displayname=id)
        self.modified = modified

    def __repr__(self) -> str:
        return "Calendar(%s)" % self.url

    @property
    def name(self) -> str:
        return self.info.displayname or self.id

    def to_task_list(self) -> TaskList:
        return TaskList(
            id=self.id,
            name=self.name,
            color=self.info.color or "",
            description=self.info.description or "",
            modified=self.modified,
            ctag=self.info.ctag,
            supported_components=list(self.info.components or []),
            source_url=self.info.source,
        )

    def task_url(self, uid: str) -> URL:
        return self.url.join(quote(uid, safe="") + ".ics")

    def tasks(self, timeout: Optional[float] = None) -> List[Task]:
        """
        Fetches every VTODO in the calendar with a calendar-query REPORT.
        Payloads that don't decode to a task with a UID are dropped.
        """
        response = self.client.report(
            str(self.url), xml_builders.build_todo_query_body(), depth=1, timeout=timeout
        )
        if response.status != 207:
            raise_for_status(response, "report", str(self.url))

        ret = []
        for result in xml_parsers.parse_todo_query(response.content):
            if not result.calendar_data:
                continue
            for block in vcal.split_vtodos(vcal.fix(result.calendar_data)):
                task = vcal.parse_vtodo(block)
                if not task.id:
                    error.weirdness("VTODO without UID at %s ignored" % result.href)
                    continue
                task.list_id = self.id
                ret.append(task)
        return ret

    def save_task(self, task: Task, timeout: Optional[float] = None) -> None:
        """
        PUTs the task at its deterministic URL.  Creating and updating is
        the same operation; saving the same task twice is harmless.
        """
        url = str(self.task_url(task.id))
        response = self.client.put(url, vcal.generate_vtodo(task), timeout=timeout)
        if response.status not in (200, 201, 204):
            raise_for_status(response, "put", url)

    def delete_task(self, uid: str, timeout: Optional[float] = None) -> None:
        """
        Deletes a task.  A task that is already gone counts as deleted.
        """
        url = str(self.task_url(uid))
        response = self.client.delete(url, timeout=timeout)
        if response.status not in (200, 204, 404):
            raise_for_status(response, "delete", url)


class CalendarSet:
    """
    The calendar home of a user, ``/remote.php/dav/calendars/<user>/``.
    """

    def __init__(self, client: DAVClient, url: Optional[URL] = None) -> None:
        self.client = client
        self.url = URL.objectify(url or client.url)

    def calendar(self, cal_id: str) -> Calendar:
        """A Calendar object for the given id, without asking the server"""
        return Calendar(self.client, self.url.join(quote(cal_id) + "/"), cal_id)

    def calendars(self, timeout: Optional[float] = None) -> List[Calendar]:
        """
        Lists the calendars in the home that can hold tasks.

        Calendars reporting a component set without VTODO are left out,
        and so is anything that isn't a calendar directly below the home
        (the home itself, inbox/outbox, deeper paths).
        """
        response = self.client.propfind(
            str(self.url),
            xml_builders.build_calendar_propfind_body(),
            depth=1,
            timeout=timeout,
        )
        if response.status != 207:
            raise_for_status(response, "propfind", str(self.url))

        discovered = datetime.now(timezone.utc)
        ret = []
        for info in xml_parsers.parse_calendars(response.content):
            cal_id = xml_parsers.extract_calendar_id(info.href, self.url.path)
            if cal_id is None:
                continue
            if info.is_calendar is False:
                log.debug("%s is not a calendar, skipping", info.href)
                continue
            if not info.supports_todo:
                log.debug("%s does not support %s, skipping", info.href, TASK_COMPONENT)
                continue
            ret.append(
                Calendar(
                    self.client,
                    self.url.join(quote(cal_id) + "/"),
                    cal_id,
                    info=info,
                    modified=discovered,
                )
            )
        return ret

    def subscribe(self, source_url: str, timeout: Optional[float] = None) -> Calendar:
        """
        Creates a calendar subscribed to an external feed.  The server
        refuses writes to it.  Subscribing twice to a URL with the same
        derived name conflicts and raises MkcalendarError.
        """
        validate_source_url(source_url)
        name = derive_calendar_name(source_url)
        calendar = self.calendar(name)
        url = str(calendar.url)
        response = self.client.mkcalendar(
            url, xml_builders.build_mkcalendar_body(name, source_url), timeout=timeout
        )
        if response.status != 201:
            raise_for_status(response, "mkcalendar", url)

        calendar.info = CalendarInfo(
            href=calendar.url.path,
            displayname=name,
            components=[TASK_COMPONENT],
            is_calendar=True,
            source=source_url,
        )
        calendar.modified = datetime.now(timezone.utc)
        return calendar

    def unsubscribe(self, cal_id: str, timeout: Optional[float] = None) -> None:
        """
        Deletes a subscribed calendar.  Unlike task deletion, deleting a
        calendar that isn't there is an error.
        """
        url = str(self.calendar(cal_id).url)
        response = self.client.delete(url, timeout=timeout)
        if response.status == 404:
            raise error.NotFoundError(url=url, reason="subscription not found")
        if response.status not in (200, 204):
            raise_for_status(response, "delete", url)
