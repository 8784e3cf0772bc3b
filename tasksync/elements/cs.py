#!/usr/bin/env python
"""
Elements outside of the RFC namespaces: the calendarserver.org
properties (change tag, subscription source), the apple calendar
color and the owncloud sharing extension used by Nextcloud.
"""
from typing import ClassVar
from typing import Dict

from .base import BaseElement
from .base import ValuedBaseElement
from tasksync.lib.namespace import nsmap2
from tasksync.lib.namespace import ns


class GetCTag(ValuedBaseElement):
    tag: ClassVar[str] = ns("CS", "getctag")
    extra_nsmap: ClassVar[Dict[str, str]] = {"CS": nsmap2["CS"]}


class Source(BaseElement):
    tag: ClassVar[str] = ns("CS", "source")
    extra_nsmap: ClassVar[Dict[str, str]] = {"CS": nsmap2["CS"]}


class CalendarColor(ValuedBaseElement):
    tag: ClassVar[str] = ns("I", "calendar-color")
    extra_nsmap: ClassVar[Dict[str, str]] = {"I": nsmap2["I"]}


# Sharing
class Share(BaseElement):
    tag: ClassVar[str] = ns("O", "share")
    extra_nsmap: ClassVar[Dict[str, str]] = {"O": nsmap2["O"]}


class ShareSet(BaseElement):
    tag: ClassVar[str] = ns("O", "set")


class ShareRemove(BaseElement):
    tag: ClassVar[str] = ns("O", "remove")


class ReadWrite(BaseElement):
    tag: ClassVar[str] = ns("O", "read-write")


class ShareAll(BaseElement):
    tag: ClassVar[str] = ns("O", "all")
