"""
Intermediate types produced by the protocol parsers.

These sit between the raw wire data and the domain objects in
``tasksync.backend``.  They carry everything a response said, the
collection layer decides what to make of it.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class CalendarInfo:
    """
    One calendar collection as reported by a PROPFIND.

    Attributes:
        href: path of the collection, unquoted
        displayname: display name, may be empty
        components: names from supported-calendar-component-set, or
            None if the server did not report the property
        is_calendar: whether the resourcetype says calendar.  None if
            the resourcetype was not available (regex fallback)
        ctag: change tag
        source: external URL for subscriptions
    """

    href: str
    displayname: str = ""
    components: list[str] | None = None
    is_calendar: bool | None = None
    ctag: str | None = None
    color: str | None = None
    description: str | None = None
    source: str | None = None

    @property
    def supports_todo(self) -> bool:
        """A missing component set means the server accepts all components"""
        if self.components is None:
            return True
        return "VTODO" in (c.upper() for c in self.components)


@dataclass
class CalendarQueryResult:
    """
    Parsed result of a calendar-query REPORT for a single object.

    Attributes:
        href: URL/path of the calendar object
        etag: ETag of the object
        calendar_data: iCalendar data as string
        status: HTTP status for this resource (default 200)
    """

    href: str
    etag: str | None = None
    calendar_data: str | None = None
    status: int = 200


@dataclass
class OCSResult:
    """
    The ``ocs`` envelope of a sharing API response.

    ``statuscode`` is the code inside the envelope, which does not
    always agree with the HTTP status.
    """

    status: str = ""
    statuscode: int = 0
    message: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.statuscode in (100, 200)
