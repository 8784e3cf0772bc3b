#!/usr/bin/env python
"""
Conversion between Task objects and VTODO text.

The encoder builds the components with icalendar and writes one
canonical layout.  The decoder works on the text line by line, since
servers (and the clients that wrote the data before us) are not always
strict about the grammar; only the TEXT values are taken from
icalendar, when it accepts the block.  Decoding never raises on
malformed input, fields it cannot make sense of keep their defaults.
"""
import datetime
import difflib
import logging
import re
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

import icalendar

from tasksync.backend import Task
from tasksync.backend import TaskStatus
from tasksync.lib.python_utilities import to_normal_str

log = logging.getLogger("tasksync")

utc = datetime.timezone.utc

PRODID = "-//tasksync//tasksync//EN"

## Tried in order, first match wins
DATE_FORMATS = ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d")

STATUS_TO_ICAL: Dict[TaskStatus, str] = {
    TaskStatus.NEEDS_ACTION: "NEEDS-ACTION",
    TaskStatus.COMPLETED: "COMPLETED",
    TaskStatus.IN_PROGRESS: "IN-PROCESS",
    TaskStatus.CANCELLED: "CANCELLED",
}
STATUS_FROM_ICAL: Dict[str, TaskStatus] = {v: k for k, v in STATUS_TO_ICAL.items()}

## A parameter list, quoted parameter values may contain ':' and ';'
_PARAMS = r'((?:;(?:"[^"]*"|[^";:\r\n])*)*)'

## Global counter.  We don't want to be too verbose on the users
fixup_error_loggings = 0


def status_to_ical(status: TaskStatus) -> str:
    return STATUS_TO_ICAL.get(status, "NEEDS-ACTION")


def status_from_ical(value: str) -> TaskStatus:
    return STATUS_FROM_ICAL.get(value.strip().upper(), TaskStatus.NEEDS_ACTION)


def parse_calendar_date(value: str) -> datetime.datetime:
    """
    Parses DATE-TIME in UTC form, DATE-TIME in floating form and DATE.
    Floating and date-only values are taken as UTC.  Raises ValueError
    if none of the forms match.
    """
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.datetime.strptime(value, fmt).replace(tzinfo=utc)
        except ValueError:
            continue
    raise ValueError("unrecognized date: %r" % value)


def _utc(ts: datetime.datetime) -> datetime.datetime:
    """coerce datetimes to UTC (naive ones are taken as localtime)"""
    return ts.astimezone(utc).replace(microsecond=0)


def unfold(text: str) -> str:
    return re.sub(r"\r?\n[ \t]", "", text)


def extract_property(content: str, name: str) -> str:
    """
    Returns the raw value of the first ``name`` property in the
    (unfolded) content, ignoring any parameters.  Empty string if the
    property is absent.
    """
    match = re.search(
        r"^%s%s:(.*)$" % (re.escape(name), _PARAMS),
        content,
        flags=re.MULTILINE | re.IGNORECASE,
    )
    if not match:
        return ""
    return match.group(2).strip()


def extract_property_params(content: str, name: str) -> List[Tuple[Dict[str, str], str]]:
    """All occurrences of a property, as (parameters, value) pairs"""
    ret = []
    for match in re.finditer(
        r"^%s%s:(.*)$" % (re.escape(name), _PARAMS),
        content,
        flags=re.MULTILINE | re.IGNORECASE,
    ):
        params = {}
        for param in re.findall(r';((?:"[^"]*"|[^";])*)', match.group(1)):
            key, _, val = param.partition("=")
            params[key.strip().upper()] = val.strip().strip('"')
        ret.append((params, match.group(2).strip()))
    return ret


def split_vtodos(calendar_data: str) -> List[str]:
    """
    Cuts the VTODO blocks out of a calendar payload.  Nested components
    (alarms) stay inside the block they belong to, anything outside a
    VTODO (timezones, events) is dropped.
    """
    blocks = []
    current: Optional[List[str]] = None
    depth = 0
    for line in to_normal_str(calendar_data).split("\n"):
        stripped = line.strip()
        if current is None:
            if stripped.upper() == "BEGIN:VTODO":
                current = [stripped]
                depth = 0
            continue
        current.append(line.rstrip("\r"))
        if stripped.upper().startswith("BEGIN:"):
            depth += 1
        elif stripped.upper().startswith("END:"):
            if depth == 0:
                blocks.append("\n".join(current))
                current = None
            else:
                depth -= 1
    return blocks


def _strip_subcomponents(content: str) -> str:
    """Drops everything nested inside the outermost component"""
    lines = []
    depth = 0
    for line in content.split("\n"):
        upper = line.strip().upper()
        if upper.startswith("BEGIN:"):
            depth += 1
            if depth == 1:
                lines.append(line)
            continue
        if upper.startswith("END:"):
            depth -= 1
            if depth == 0:
                lines.append(line)
            continue
        if depth <= 1:
            lines.append(line)
    return "\n".join(lines)


def _optional_date(content: str, name: str) -> Optional[datetime.datetime]:
    value = extract_property(content, name)
    if not value:
        return None
    try:
        return parse_calendar_date(value)
    except ValueError:
        log.debug("ignoring unparsable %s value %r", name, value)
        return None


def _split_categories(value: str) -> List[str]:
    return [x for x in re.split(r"(?<!\\),", value) if x.strip()]


def _load_todo(block: str):
    """
    The VTODO block run through icalendar, for the TEXT values.  None
    if icalendar refuses it, the raw values are used then.
    """
    try:
        calendar = icalendar.Calendar.from_ical(
            "BEGIN:VCALENDAR\n%s\nEND:VCALENDAR\n" % block
        )
    except Exception as err:
        log.debug("icalendar could not parse the VTODO, using raw values: %s", err)
        return None
    todos = calendar.walk("VTODO")
    return todos[0] if todos else None


def _text(todo, content: str, name: str) -> str:
    if todo is not None:
        value = todo.get(name)
        if isinstance(value, list):
            value = value[0] if value else None
        if value is not None:
            return str(value).strip()
    return extract_property(content, name)


def _categories(todo, content: str) -> List[str]:
    values = todo.get("CATEGORIES") if todo is not None else None
    if values is None:
        return [
            x.strip() for x in _split_categories(extract_property(content, "CATEGORIES"))
        ]
    if not isinstance(values, list):
        values = [values]
    ret = []
    for value in values:
        ret.extend(str(x).strip() for x in getattr(value, "cats", [value]))
    return [x for x in ret if x]


def _parent_id(content: str) -> Optional[str]:
    for params, value in extract_property_params(content, "RELATED-TO"):
        if value and params.get("RELTYPE", "PARENT").upper() == "PARENT":
            return value
    return None


def parse_vtodo(text: str) -> Task:
    """
    Decodes a VTODO block (with or without the VCALENDAR wrapper) into
    a Task.  A missing UID gives a Task with an empty id, it's up to the
    caller to drop those.
    """
    content = unfold(to_normal_str(text))
    blocks = split_vtodos(content)
    todo = None
    if blocks:
        content = blocks[0]
        todo = _load_todo(content)
    content = _strip_subcomponents(content)

    priority = 0
    raw_priority = extract_property(content, "PRIORITY")
    if raw_priority.isdigit() and 0 <= int(raw_priority) <= 9:
        priority = int(raw_priority)

    stamp = _optional_date(content, "DTSTAMP")

    return Task(
        id=extract_property(content, "UID"),
        summary=_text(todo, content, "SUMMARY"),
        description=_text(todo, content, "DESCRIPTION"),
        status=status_from_ical(extract_property(content, "STATUS")),
        priority=priority,
        due_date=_optional_date(content, "DUE"),
        start_date=_optional_date(content, "DTSTART"),
        completed=_optional_date(content, "COMPLETED"),
        created=_optional_date(content, "CREATED") or stamp,
        modified=_optional_date(content, "LAST-MODIFIED") or stamp,
        categories=",".join(_categories(todo, content)),
        parent_id=_parent_id(content),
    )


def generate_vtodo(task: Task, now: Optional[datetime.datetime] = None) -> str:
    """
    Encodes a Task as a complete VCALENDAR object with one VTODO.
    Property order is fixed, lines are CRLF terminated and folded at 75
    octets.  CREATED and LAST-MODIFIED fall back to the DTSTAMP.
    """
    stamp = _utc(now or datetime.datetime.now(tz=utc))
    my_instance = icalendar.Calendar()
    my_instance.add("version", "2.0")
    my_instance.add("prodid", PRODID)

    todo = icalendar.Todo()
    todo.add("uid", task.id)
    todo.add("dtstamp", stamp)
    if task.summary:
        todo.add("summary", task.summary)
    if task.description:
        todo.add("description", task.description)
    todo.add("status", status_to_ical(task.status))
    if 0 < task.priority <= 9:
        todo.add("priority", task.priority)
    if task.categories:
        categories = [x.strip() for x in task.categories.split(",") if x.strip()]
        todo.add("categories", icalendar.vCategory(categories), encode=False)
    if task.due_date:
        todo.add("due", _utc(task.due_date))
    if task.start_date:
        todo.add("dtstart", _utc(task.start_date))
    todo.add("created", _utc(task.created) if task.created else stamp)
    todo.add("last-modified", _utc(task.modified) if task.modified else stamp)
    if task.completed:
        todo.add("completed", _utc(task.completed))
    if task.parent_id:
        todo.add(
            "related-to",
            task.parent_id,
            parameters={"reltype": "PARENT"},
            encode=True,
        )
    my_instance.add_component(todo)
    return my_instance.to_ical(sorted=False).decode("utf-8")


def fix(ical):
    """This function receives some ical as it's given from the server, checks for
    breakages with the standard, and attempts to fix up known issues:

    1) COMPLETED MUST be a datetime in UTC according to the RFC, but sometimes
    a date is given.

    2) Some servers generate nonsensical CREATED timestamps in year 0001.
    Those are moved to the epoch.

    3) DTSTAMP and DUE are sometimes duplicated - keep the first one
    encountered.

    4) Trailing white space is removed.
    """
    ical = to_normal_str(ical)
    if not ical.endswith("\n"):
        ical = ical + "\n"

    ## 1) Add an arbitrary time if completed is given as date
    fixed = re.sub(
        r"^COMPLETED(?:;VALUE=DATE)?:(\d{8})\s*$",
        r"COMPLETED:\g<1>T120000Z",
        ical,
        flags=re.MULTILINE,
    )

    ## 2) CREATED timestamps prior to epoch does not make sense
    fixed = re.sub("CREATED:00001231T000000Z", "CREATED:19700101T000000Z", fixed)

    ## 4) trailing whitespace probably never makes sense
    fixed = re.sub(" +$", "", fixed, flags=re.MULTILINE)

    ## 3) remove duplication of DTSTAMP and DUE
    fixed2 = (
        "\n".join(filter(LineFilterDiscardingDuplicates(), fixed.strip().split("\n")))
        + "\n"
    )

    if fixed2 != ical:
        ## Rate-limiting of the logging, only powers of two get a warning
        global fixup_error_loggings
        fixup_error_loggings += 1
        is_power_of_two = lambda n: not (n & (n - 1))
        if is_power_of_two(fixup_error_loggings):
            _log = log.warning
        else:
            _log = log.debug

        log_message = [
            "Ical data was modified to avoid compatibility issues",
            "(Your calendar server breaks the icalendar standard)",
            f"(error count: {fixup_error_loggings} - this error is ratelimited)",
        ]
        diff = list(
            difflib.unified_diff(ical.split("\n"), fixed2.split("\n"), lineterm="")
        )
        _log("\n".join(log_message + diff))

    return fixed2


class LineFilterDiscardingDuplicates:
    """Needs to be a class because it keeps track of whether a certain
    group of date line was already encountered within a component.
    This must be called line by line in order on the complete text.
    """

    def __init__(self) -> None:
        self.stamped = 0
        self.ended = 0

    def __call__(self, line):
        if line.startswith("BEGIN:V"):
            self.stamped = 0
            self.ended = 0

        elif re.match("DUE[:;]", line):
            if self.ended:
                return False
            self.ended += 1

        elif re.match("DTSTAMP[:;]", line):
            if self.stamped:
                return False
            self.stamped += 1

        return True
