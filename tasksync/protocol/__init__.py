"""
Sans-I/O protocol layer.

Builds request bodies and parses response bodies as pure data
transformations, the HTTP round trips happen in ``tasksync.davclient``.

- types: intermediate result types
- xml_builders: CalDAV/WebDAV request bodies
- xml_parsers: multistatus parsing, structured with a regex fallback
- ocs: the Nextcloud OCS sharing API envelope
"""

from .types import CalendarInfo
from .types import CalendarQueryResult
from .types import OCSResult

__all__ = [
    "CalendarInfo",
    "CalendarQueryResult",
    "OCSResult",
]
