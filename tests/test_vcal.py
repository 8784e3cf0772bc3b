#!/usr/bin/env python
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from unittest import TestCase
from unittest import mock

import icalendar
import pytest
from tasksync.backend import Task
from tasksync.backend import TaskStatus
from tasksync.lib import vcal
from tasksync.lib.python_utilities import to_wire
from tasksync.lib.vcal import fix
from tasksync.lib.vcal import generate_vtodo
from tasksync.lib.vcal import parse_calendar_date
from tasksync.lib.vcal import parse_vtodo

utc = timezone.utc

# example from http://www.rfc-editor.org/rfc/rfc5545.txt, with a VALARM added
todo = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example Corp.//CalDAV Client//EN
BEGIN:VTODO
UID:20070313T123432Z-456553@example.com
DTSTAMP:20070313T123432Z
DUE;VALUE=DATE:20070501
SUMMARY:Submit Quebec Income Tax Return for 2006
CLASS:CONFIDENTIAL
CATEGORIES:FAMILY,FINANCE
STATUS:NEEDS-ACTION
BEGIN:VALARM
ACTION:AUDIO
TRIGGER:-PT15M
SUMMARY:Alarm summary that must not leak
END:VALARM
END:VTODO
END:VCALENDAR"""

todo_in_process = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example Corp.//CalDAV Client//EN
BEGIN:VTIMEZONE
TZID:Europe/Oslo
END:VTIMEZONE
BEGIN:VTODO
UID:child-1
DTSTAMP:20240102T030405Z
SUMMARY:Write the report\\, part 2
DESCRIPTION:first line\\nsecond line
DTSTART;TZID=Europe/Oslo:20240105T090000
PRIORITY:3
STATUS:IN-PROCESS
RELATED-TO;RELTYPE=CHILD:grandchild
RELATED-TO;RELTYPE=PARENT:parent-1
CREATED:20240101T000000Z
LAST-MODIFIED:20240102T030405Z
END:VTODO
END:VCALENDAR"""


def full_task(**kwargs):
    settings = dict(
        id="task-1",
        summary="Buy milk",
        description="Two litres, semi-skimmed",
        status=TaskStatus.IN_PROGRESS,
        priority=5,
        due_date=datetime(2024, 3, 1, 17, 0, 0, tzinfo=utc),
        start_date=datetime(2024, 2, 28, 8, 30, 0, tzinfo=utc),
        completed=datetime(2024, 3, 1, 12, 0, 0, tzinfo=utc),
        created=datetime(2024, 2, 1, 10, 0, 0, tzinfo=utc),
        modified=datetime(2024, 2, 2, 11, 0, 0, tzinfo=utc),
        categories="shopping,home",
        parent_id="parent-1",
    )
    settings.update(kwargs)
    return Task(**settings)


class TestVcal(TestCase):
    def verifyICal(self, ical):
        """
        Does a best effort on verifying that the ical is correct, by
        pushing it through the icalendar library
        """
        icalobj = icalendar.Calendar.from_ical(ical)
        todos = [x for x in icalobj.walk() if x.name == "VTODO"]
        self.assertEqual(len(todos), 1)
        return todos[0]

    def testGenerateLayout(self):
        now = datetime(2024, 2, 3, 4, 5, 6, tzinfo=utc)
        ical = generate_vtodo(full_task(), now=now)
        assert ical.endswith("\r\n")
        assert "\n" not in ical.replace("\r\n", "")
        lines = ical.split("\r\n")[:-1]
        assert lines[:6] == [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            "PRODID:-//tasksync//tasksync//EN",
            "BEGIN:VTODO",
            "UID:task-1",
            "DTSTAMP:20240203T040506Z",
        ]
        names = [line.split(":", 1)[0].split(";", 1)[0] for line in lines[4:-2]]
        assert names == [
            "UID",
            "DTSTAMP",
            "SUMMARY",
            "DESCRIPTION",
            "STATUS",
            "PRIORITY",
            "CATEGORIES",
            "DUE",
            "DTSTART",
            "CREATED",
            "LAST-MODIFIED",
            "COMPLETED",
            "RELATED-TO",
        ]
        assert "RELATED-TO;RELTYPE=PARENT:parent-1" in lines
        assert "STATUS:IN-PROCESS" in lines
        assert "DUE:20240301T170000Z" in lines
        vtodo = self.verifyICal(ical)
        assert str(vtodo["uid"]) == "task-1"
        assert str(vtodo["summary"]) == "Buy milk"

    def testGenerateMinimal(self):
        now = datetime(2024, 2, 3, 4, 5, 6, tzinfo=utc)
        ical = generate_vtodo(Task(id="bare"), now=now)
        assert "SUMMARY" not in ical
        assert "DESCRIPTION" not in ical
        assert "PRIORITY" not in ical
        assert "CATEGORIES" not in ical
        assert "DUE" not in ical
        assert "COMPLETED" not in ical
        assert "RELATED-TO" not in ical
        assert "STATUS:NEEDS-ACTION\r\n" in ical
        ## timestamps are filled in from the DTSTAMP
        assert "CREATED:20240203T040506Z\r\n" in ical
        assert "LAST-MODIFIED:20240203T040506Z\r\n" in ical
        self.verifyICal(ical)

    def testGenerateEscapesAndFolds(self):
        summary = "Semicolons; commas, backslashes \\ and\nnewlines " + "x" * 120
        ical = generate_vtodo(Task(id="long", summary=summary))
        for line in ical.split("\r\n"):
            assert len(line.encode("utf-8")) <= 75
        vtodo = self.verifyICal(ical)
        assert str(vtodo["summary"]) == summary
        assert parse_vtodo(ical).summary == summary

    def testTextValuesRoundTrip(self):
        original = Task(
            id="text",
            summary="Milk, eggs; bread",
            description="C:\\temp\\list.txt\nsecond line; with, punctuation",
            categories="food;drink,home",
        )
        ical = generate_vtodo(original)
        assert "SUMMARY:Milk\\, eggs\\; bread\r\n" in ical
        task = parse_vtodo(ical)
        assert task.summary == original.summary
        assert task.description == original.description
        assert task.categories == original.categories

    def testParseFallsBackToRawValues(self):
        ical = "BEGIN:VTODO\r\nUID:raw\r\nSUMMARY:plain summary\r\nCATEGORIES:a,b\r\nEND:VTODO\r\n"
        with mock.patch.object(
            icalendar.Calendar, "from_ical", side_effect=ValueError("nope")
        ):
            task = parse_vtodo(ical)
        assert task.id == "raw"
        assert task.summary == "plain summary"
        assert task.categories == "a,b"

    def testParseRfcExample(self):
        task = parse_vtodo(todo)
        assert task.id == "20070313T123432Z-456553@example.com"
        assert task.summary == "Submit Quebec Income Tax Return for 2006"
        assert task.status == TaskStatus.NEEDS_ACTION
        assert task.categories == "FAMILY,FINANCE"
        assert task.due_date == datetime(2007, 5, 1, tzinfo=utc)
        assert task.priority == 0
        assert task.parent_id is None
        ## created/modified fall back to the DTSTAMP
        assert task.created == datetime(2007, 3, 13, 12, 34, 32, tzinfo=utc)
        assert task.modified == task.created

    def testParseIgnoresNestedComponents(self):
        task = parse_vtodo(todo)
        assert task.summary == "Submit Quebec Income Tax Return for 2006"

    def testParseParametersAndUnescape(self):
        task = parse_vtodo(todo_in_process)
        assert task.id == "child-1"
        assert task.summary == "Write the report, part 2"
        assert task.description == "first line\nsecond line"
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.priority == 3
        ## floating time with TZID is taken as UTC
        assert task.start_date == datetime(2024, 1, 5, 9, 0, 0, tzinfo=utc)
        assert task.parent_id == "parent-1"
        assert task.created == datetime(2024, 1, 1, tzinfo=utc)

    def testParseRelatedToWithoutReltype(self):
        ical = "BEGIN:VTODO\r\nUID:x\r\nRELATED-TO:the-parent\r\nEND:VTODO\r\n"
        assert parse_vtodo(ical).parent_id == "the-parent"

    def testParseFolded(self):
        ical = (
            "BEGIN:VTODO\r\nUID:folded\r\nSUMMARY:This is a very long summary th\r\n"
            " at continues on the next line\r\nEND:VTODO\r\n"
        )
        task = parse_vtodo(ical)
        assert task.summary == "This is a very long summary that continues on the next line"

    def testParseMalformed(self):
        ical = """BEGIN:VTODO
UID:broken
DUE:tomorrow-ish
PRIORITY:high
STATUS:SOMEDAY
DTSTART:2024-01-01
END:VTODO"""
        task = parse_vtodo(ical)
        assert task.id == "broken"
        assert task.due_date is None
        assert task.start_date is None
        assert task.priority == 0
        assert task.status == TaskStatus.NEEDS_ACTION

    def testParseOutOfRangePriority(self):
        assert parse_vtodo("BEGIN:VTODO\nUID:p\nPRIORITY:12\nEND:VTODO").priority == 0

    def testParseNoUid(self):
        assert parse_vtodo("BEGIN:VTODO\nSUMMARY:anonymous\nEND:VTODO").id == ""

    def testParseGarbage(self):
        task = parse_vtodo("this is not icalendar at all")
        assert task.id == ""
        assert task.status == TaskStatus.NEEDS_ACTION

    def testRoundTrip(self):
        original = full_task()
        task = parse_vtodo(generate_vtodo(original))
        for attr in (
            "id",
            "summary",
            "description",
            "status",
            "priority",
            "categories",
            "due_date",
            "start_date",
            "completed",
            "created",
            "modified",
            "parent_id",
        ):
            assert getattr(task, attr) == getattr(original, attr), attr

    def testRoundTripDropsSubSeconds(self):
        due = datetime(2024, 3, 1, 17, 0, 0, 999999, tzinfo=utc)
        task = parse_vtodo(generate_vtodo(full_task(due_date=due)))
        assert task.due_date == due.replace(microsecond=0)

    def testRoundTripOtherTimezone(self):
        cet = timezone(timedelta(hours=1))
        due = datetime(2024, 3, 1, 18, 0, 0, tzinfo=cet)
        ical = generate_vtodo(full_task(due_date=due))
        assert "DUE:20240301T170000Z" in ical
        assert parse_vtodo(ical).due_date == due

    def testRoundTripAllStatuses(self):
        for status in TaskStatus:
            assert parse_vtodo(generate_vtodo(full_task(status=status))).status == status

    def testFix(self):
        broken = """BEGIN:VCALENDAR
BEGIN:VTODO
UID:fixme
DTSTAMP:20240101T000000Z
DTSTAMP:20240102T000000Z
COMPLETED;VALUE=DATE:20240105
CREATED:00001231T000000Z
SUMMARY:trailing   
END:VTODO
END:VCALENDAR
"""
        fixed = fix(to_wire(broken))
        assert fixed.count("DTSTAMP") == 1
        assert "DTSTAMP:20240101T000000Z" in fixed
        assert "COMPLETED:20240105T120000Z" in fixed
        assert "CREATED:19700101T000000Z" in fixed
        assert "SUMMARY:trailing\n" in fixed
        task = parse_vtodo(fixed)
        assert task.completed == datetime(2024, 1, 5, 12, 0, 0, tzinfo=utc)

    def testFixLeavesValidDataAlone(self):
        valid = todo_in_process + "\n"
        assert fix(valid) == valid

    def testSplitVtodos(self):
        data = todo_in_process.replace(
            "END:VCALENDAR", "BEGIN:VTODO\nUID:second\nEND:VTODO\nEND:VCALENDAR"
        )
        blocks = vcal.split_vtodos(data)
        assert len(blocks) == 2
        assert blocks[0].startswith("BEGIN:VTODO")
        assert "TZID:Europe/Oslo\n" not in blocks[0]
        assert blocks[1] == "BEGIN:VTODO\nUID:second\nEND:VTODO"

    def testSplitKeepsAlarmInsideBlock(self):
        blocks = vcal.split_vtodos(todo)
        assert len(blocks) == 1
        assert "BEGIN:VALARM" in blocks[0]
        assert blocks[0].endswith("END:VTODO")


class TestCalendarDate:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("20240115T103000Z", datetime(2024, 1, 15, 10, 30, tzinfo=utc)),
            ("20240115T103000", datetime(2024, 1, 15, 10, 30, tzinfo=utc)),
            ("20240115", datetime(2024, 1, 15, tzinfo=utc)),
            ("  20240115  ", datetime(2024, 1, 15, tzinfo=utc)),
        ],
    )
    def testFormats(self, value, expected):
        assert parse_calendar_date(value) == expected

    @pytest.mark.parametrize("value", ["", "2024-01-15", "20241315", "soon"])
    def testInvalid(self, value):
        with pytest.raises(ValueError):
            parse_calendar_date(value)


class TestStatusTable:
    def testBothWays(self):
        table = {
            TaskStatus.NEEDS_ACTION: "NEEDS-ACTION",
            TaskStatus.COMPLETED: "COMPLETED",
            TaskStatus.IN_PROGRESS: "IN-PROCESS",
            TaskStatus.CANCELLED: "CANCELLED",
        }
        for status, ical in table.items():
            assert vcal.status_to_ical(status) == ical
            assert vcal.status_from_ical(ical) == status

    def testInternalNames(self):
        assert [x.value for x in TaskStatus] == ["TODO", "DONE", "PROCESSING", "CANCELLED"]

    def testUnknownInbound(self):
        assert vcal.status_from_ical("ON-HOLD") == TaskStatus.NEEDS_ACTION
        assert vcal.status_from_ical("") == TaskStatus.NEEDS_ACTION
        assert vcal.status_from_ical(" completed ") == TaskStatus.COMPLETED
