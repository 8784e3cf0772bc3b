#!/usr/bin/env python
from typing import ClassVar

from .base import BaseElement
from .base import NamedBaseElement
from .base import ValuedBaseElement
from tasksync.lib.namespace import ns


# Operations
class CalendarQuery(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-query")


class Mkcalendar(BaseElement):
    tag: ClassVar[str] = ns("C", "mkcalendar")


# Filters
class Filter(BaseElement):
    tag: ClassVar[str] = ns("C", "filter")


class CompFilter(NamedBaseElement):
    tag: ClassVar[str] = ns("C", "comp-filter")


# Components / Data
class CalendarData(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-data")


class Comp(NamedBaseElement):
    tag: ClassVar[str] = ns("C", "comp")


# calendar resource type, see rfc4791, sec. 4.2
class Calendar(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar")


# Properties
class CalendarDescription(ValuedBaseElement):
    tag: ClassVar[str] = ns("C", "calendar-description")


class SupportedCalendarComponentSet(ValuedBaseElement):
    tag: ClassVar[str] = ns("C", "supported-calendar-component-set")
