"""
Pure functions for parsing CalDAV XML responses.

Every response type has two parsers.  The structured one runs lxml
over the body and walks the multistatus tree.  Some servers send
bodies lxml rejects (truncated responses, undeclared prefixes, a
missing multistatus root); for those a regex based parser picks out
what it can.  ``parse_calendars`` and ``parse_todo_query`` try the
structured parser first and fall back to the regex one, logging the
fallback.

All functions in this module are pure - they take XML bytes in and return
structured data out, with no side effects or I/O.
"""

import html
import re
from typing import Any
from urllib.parse import unquote

from lxml import etree
from lxml.etree import _Element

from tasksync.elements import cdav, cs, dav
from tasksync.lib import error
from tasksync.lib.python_utilities import to_normal_str
from tasksync.lib.url import URL

from .types import CalendarInfo, CalendarQueryResult


class StructureError(ValueError):
    """The body is well-formed XML, but not a multistatus document"""


def parse_calendars(body: bytes) -> list[CalendarInfo]:
    """
    Parse a calendar home PROPFIND response, falling back to the regex
    parser when the structured parse fails.
    """
    try:
        return parse_calendar_list(body)
    except (etree.XMLSyntaxError, StructureError) as err:
        error.weirdness("structured PROPFIND parse failed, using regex fallback", str(err))
        return parse_calendar_list_regex(body)


def parse_todo_query(body: bytes) -> list[CalendarQueryResult]:
    """
    Parse a calendar-query REPORT response, falling back to the regex
    parser when the structured parse fails.
    """
    try:
        return parse_calendar_query(body)
    except (etree.XMLSyntaxError, StructureError) as err:
        error.weirdness("structured REPORT parse failed, using regex fallback", str(err))
        return parse_calendar_query_regex(body)


def parse_calendar_list(body: bytes) -> list[CalendarInfo]:
    """
    Structured parse of a PROPFIND multistatus.

    Raises:
        XMLSyntaxError: If body is not valid XML
        StructureError: If the document is not a multistatus
    """
    if not body:
        return []
    tree = etree.fromstring(_to_bytes(body), etree.XMLParser(remove_blank_text=True))

    calendars: list[CalendarInfo] = []
    for elem in _strip_to_multistatus(tree):
        if elem.tag != dav.Response.tag:
            continue

        href, propstats, _ = _parse_response_element(elem)
        properties = _extract_properties(propstats)

        resourcetype = properties.get(dav.ResourceType.tag)
        is_calendar = None
        if dav.ResourceType.tag in properties:
            is_calendar = cdav.Calendar.tag in (resourcetype or [])

        components = None
        if cdav.SupportedCalendarComponentSet.tag in properties:
            components = properties[cdav.SupportedCalendarComponentSet.tag] or []
            if isinstance(components, str):
                components = [components]

        source = properties.get(cs.Source.tag)
        if isinstance(source, list):
            source = source[0] if source else None

        calendars.append(
            CalendarInfo(
                href=href,
                displayname=(properties.get(dav.DisplayName.tag) or "").strip(),
                components=components,
                is_calendar=is_calendar,
                ctag=properties.get(cs.GetCTag.tag),
                color=properties.get(cs.CalendarColor.tag),
                description=properties.get(cdav.CalendarDescription.tag),
                source=source,
            )
        )
    return calendars


_RESPONSE_RE = re.compile(r"<(?:[\w.-]+:)?response[\s>]", re.IGNORECASE)
_HREF_RE = re.compile(r"<(?:[\w.-]+:)?href(?:\s[^>]*)?>([^<]+)</(?:[\w.-]+:)?href>")
_DISPLAYNAME_RE = re.compile(
    r"<(?:[\w.-]+:)?displayname(?:\s[^>]*)?>([^<]*)</(?:[\w.-]+:)?displayname>"
)
_COMPSET_RE = re.compile(
    r"<(?:[\w.-]+:)?supported-calendar-component-set(?:\s[^>]*)?>(.*?)</(?:[\w.-]+:)?supported-calendar-component-set>",
    re.DOTALL,
)
_COMP_RE = re.compile(r"<(?:[\w.-]+:)?comp\s[^>]*name=[\"']([^\"']+)[\"']")
_CALENDAR_DATA_RE = re.compile(
    r"<(?:[\w.-]+:)?calendar-data(?:\s[^>]*)?>(.*?)</(?:[\w.-]+:)?calendar-data>",
    re.DOTALL,
)
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)


def _response_chunks(text: str) -> list[str]:
    starts = [m.start() for m in _RESPONSE_RE.finditer(text)]
    if not starts:
        return [text]
    ends = starts[1:] + [len(text)]
    return [text[s:e] for s, e in zip(starts, ends)]


def parse_calendar_list_regex(body: bytes) -> list[CalendarInfo]:
    """
    Regex parse of a PROPFIND response.  The body is cut into one chunk
    per response element, and each chunk is searched for an href and
    displayname pair, whatever namespace prefix the server used.
    Entries without a displayname are skipped.
    """
    text = to_normal_str(body) or ""
    calendars = []
    for chunk in _response_chunks(text):
        href = _HREF_RE.search(chunk)
        displayname = _DISPLAYNAME_RE.search(chunk)
        if not href or not displayname or not displayname.group(1).strip():
            continue
        components = None
        compset = _COMPSET_RE.search(chunk)
        if compset:
            components = _COMP_RE.findall(compset.group(1))
        calendars.append(
            CalendarInfo(
                href=_clean_href(html.unescape(href.group(1).strip())),
                displayname=html.unescape(displayname.group(1).strip()),
                components=components,
            )
        )
    return calendars


def parse_calendar_query(body: bytes) -> list[CalendarQueryResult]:
    """
    Structured parse of a calendar-query REPORT multistatus.  lxml takes
    care of entity unescaping and CDATA sections.

    Raises:
        XMLSyntaxError: If body is not valid XML
        StructureError: If the document is not a multistatus
    """
    if not body:
        return []
    tree = etree.fromstring(_to_bytes(body), etree.XMLParser(huge_tree=True))

    results: list[CalendarQueryResult] = []
    for elem in _strip_to_multistatus(tree):
        if elem.tag != dav.Response.tag:
            continue

        href, propstats, status = _parse_response_element(elem)

        calendar_data: str | None = None
        etag: str | None = None
        for propstat in propstats:
            prop = propstat.find(dav.Prop.tag)
            if prop is None:
                continue

            for child in prop:
                if child.tag == cdav.CalendarData.tag:
                    calendar_data = child.text
                elif child.tag == dav.GetEtag.tag:
                    etag = child.text

        results.append(
            CalendarQueryResult(
                href=href,
                etag=etag,
                calendar_data=calendar_data,
                status=_status_to_code(status),
            )
        )
    return results


def parse_calendar_query_regex(body: bytes) -> list[CalendarQueryResult]:
    """
    Regex parse of a calendar-query REPORT response.  Pulls out every
    calendar-data payload, unwrapping CDATA and unescaping XML entities.
    """
    text = to_normal_str(body) or ""
    results = []
    for chunk in _response_chunks(text):
        href = _HREF_RE.search(chunk)
        for match in _CALENDAR_DATA_RE.finditer(chunk):
            data = match.group(1)
            cdata = _CDATA_RE.search(data)
            if cdata:
                data = cdata.group(1)
            else:
                data = html.unescape(data)
            results.append(
                CalendarQueryResult(
                    href=_clean_href(href.group(1).strip()) if href else "",
                    calendar_data=data,
                )
            )
    return results


def extract_calendar_id(href: str, home_path: str) -> str | None:
    """
    Derive the calendar id from a collection href.  The calendar home
    prefix and the trailing slash are stripped; anything that isn't a
    single path segment below the home is not a calendar of ours.
    """
    href = _clean_href(href)
    home_path = unquote(home_path)
    if not home_path.endswith("/"):
        home_path += "/"
    if not href.startswith(home_path):
        return None
    calendar_id = href[len(home_path) :]
    if calendar_id.endswith("/"):
        calendar_id = calendar_id[:-1]
    if not calendar_id or "/" in calendar_id:
        return None
    return calendar_id


# Helper functions


def _to_bytes(body: bytes | str) -> bytes:
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


def _clean_href(href: str) -> str:
    # Fix for double-encoded URLs
    if "%2540" in href:
        href = href.replace("%2540", "%40")
    href = unquote(href)
    # Convert absolute URLs to paths
    if "://" in href:
        href = unquote(URL(href).path)
    return href


def _strip_to_multistatus(tree: _Element) -> _Element:
    """
    Strip outer elements to get to the multistatus content.

    The general format is:
        <xml><multistatus>
            <response>...</response>
            <response>...</response>
        </multistatus></xml>

    But sometimes the xml element is missing.
    """
    if tree.tag == "xml" and len(tree) > 0 and tree[0].tag == dav.MultiStatus.tag:
        return tree[0]
    if tree.tag == dav.MultiStatus.tag:
        return tree
    raise StructureError("expected a multistatus document, got %s" % tree.tag)


def _parse_response_element(
    response: _Element,
) -> tuple[str, list[_Element], str | None]:
    """
    Parse a single DAV:response element.

    Returns:
        Tuple of (href, propstat elements list, status string)
    """
    status: str | None = None
    href: str | None = None
    propstats: list[_Element] = []

    for elem in response:
        if elem.tag == dav.Status.tag:
            status = elem.text
        elif elem.tag == dav.Href.tag:
            href = _clean_href((elem.text or "").strip())
        elif elem.tag == dav.PropStat.tag:
            propstats.append(elem)

    return (href or "", propstats, status)


def _extract_properties(propstats: list[_Element]) -> dict[str, Any]:
    """
    Extract properties from propstat elements into a dict.  Properties
    reported with a non-2xx status (typically 404) are skipped.
    """
    properties: dict[str, Any] = {}

    for propstat in propstats:
        status_elem = propstat.find(dav.Status.tag)
        if status_elem is not None and status_elem.text:
            if not 200 <= _status_to_code(status_elem.text) < 300:
                continue

        prop = propstat.find(dav.Prop.tag)
        if prop is None:
            continue

        for child in prop:
            properties[child.tag] = _element_to_value(child)

    return properties


def _element_to_value(elem: _Element) -> Any:
    """
    Convert an XML element to a Python value.

    For simple elements, returns text content.  For the few complex
    properties we ask for, returns a list.
    """
    tag = elem.tag

    # supported-calendar-component-set: extract comp names
    if tag == cdav.SupportedCalendarComponentSet.tag:
        return [child.get("name") for child in elem if child.get("name")]

    # resourcetype: extract child tag names (e.g., collection, calendar)
    if tag == dav.ResourceType.tag:
        return [child.tag for child in elem]

    if len(elem) == 0:
        return elem.text

    # source and similar: extract href texts
    hrefs = [child.text for child in elem if child.tag == dav.Href.tag and child.text]
    if hrefs:
        return hrefs

    return [child.text or child.tag for child in elem]


def _status_to_code(status: str | None) -> int:
    """
    Extract status code from status string like "HTTP/1.1 200 OK".

    Returns:
        Integer status code (defaults to 200 if parsing fails)
    """
    if not status:
        return 200

    parts = status.split()
    if len(parts) >= 2:
        try:
            return int(parts[1])
        except ValueError:
            pass

    return 200
