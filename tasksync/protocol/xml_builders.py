"""
Pure functions for building CalDAV XML request bodies.

All functions in this module are pure - they take data in and return XML out,
with no side effects or I/O.
"""
from typing import Optional

from lxml import etree

from tasksync.elements import cdav
from tasksync.elements import cs
from tasksync.elements import dav
from tasksync.elements.base import BaseElement


def _tostring(root: BaseElement) -> bytes:
    return etree.tostring(root.xmlelement(), encoding="utf-8", xml_declaration=True)


def build_calendar_propfind_body() -> bytes:
    """
    Build the PROPFIND body for calendar discovery in the calendar home.

    Asks for the display name, resource type, change tag and the
    supported component set, plus the color, description and
    subscription source where the server has them.

    Returns:
        UTF-8 encoded XML bytes
    """
    prop = dav.Prop() + [
        dav.DisplayName(),
        dav.ResourceType(),
        cs.GetCTag(),
        cdav.SupportedCalendarComponentSet(),
        cdav.CalendarDescription(),
        cs.CalendarColor(),
        cs.Source(),
    ]
    return _tostring(dav.Propfind() + prop)


def build_todo_query_body() -> bytes:
    """
    Build a calendar-query REPORT body matching every VTODO in a
    calendar, asking for the etag and the full calendar data.

    Returns:
        UTF-8 encoded XML bytes
    """
    prop = dav.Prop() + [dav.GetEtag(), cdav.CalendarData()]
    vcalendar = cdav.CompFilter("VCALENDAR") + cdav.CompFilter("VTODO")
    return _tostring(cdav.CalendarQuery() + [prop, cdav.Filter() + vcalendar])


def build_mkcalendar_body(
    displayname: str,
    source_url: Optional[str] = None,
) -> bytes:
    """
    Build MKCALENDAR request body.

    Args:
        displayname: Display name for the new calendar
        source_url: External URL, makes the new calendar a subscription

    Returns:
        UTF-8 encoded XML bytes
    """
    prop = dav.Prop() + [
        dav.DisplayName(displayname),
        cdav.SupportedCalendarComponentSet() + cdav.Comp("VTODO"),
    ]
    if source_url:
        prop += cs.Source() + dav.Href(source_url)
    return _tostring(cdav.Mkcalendar() + (dav.Set() + prop))


def build_share_body(principal: str, read_write: bool = False, admin: bool = False) -> bytes:
    """
    Build the owncloud sharing POST body granting a principal access.

    Args:
        principal: principal href, i.e. ``principal:principals/users/bob``
        read_write: grant write access, read only otherwise
        admin: also let the principal manage the shares
    """
    share_set = cs.ShareSet() + dav.Href(principal)
    if read_write or admin:
        share_set += cs.ReadWrite()
    if admin:
        share_set += cs.ShareAll()
    return _tostring(cs.Share() + share_set)


def build_unshare_body(principal: str) -> bytes:
    """Build the owncloud sharing POST body revoking a principal's access."""
    return _tostring(cs.Share() + (cs.ShareRemove() + dav.Href(principal)))
