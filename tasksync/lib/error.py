#!/usr/bin/env python
import logging
import os
from collections import defaultdict
from typing import Dict
from typing import Optional

from tasksync import __version__

## Environmental variables prepended with "PYTHON_TASKSYNC" are used for debug purposes,
## environmental variables prepended with "TASKSYNC_" are for connection parameters
## one of DEBUG_PDB, DEBUG, DEVELOPMENT, PRODUCTION
if "PYTHON_TASKSYNC_DEBUGMODE" in os.environ:
    debugmode = os.environ["PYTHON_TASKSYNC_DEBUGMODE"]
elif "dev" in __version__:
    debugmode = "DEVELOPMENT"
else:
    debugmode = "PRODUCTION"

log = logging.getLogger("tasksync")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)
else:
    log.setLevel(logging.WARNING)


def errmsg(r) -> str:
    """Utility for formatting a an error response to an error string"""
    return "%s %s\n\n%s" % (r.status, r.reason, r.raw)


def weirdness(*reasons):
    from tasksync.lib.debug import xmlstring

    reason = " : ".join([xmlstring(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")
    if debugmode == "DEBUG_PDB":
        log.error(f"Dropping into debugger due to {reason}")
        import pdb

        pdb.set_trace()


class ConfigurationError(ValueError):
    """
    The backend could not be constructed from the given settings.
    Raised before any network activity takes place.
    """

    pass


class DAVError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        if url:
            self.url = url
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        return "%s at '%s', reason %s" % (
            self.__class__.__name__,
            self.url,
            self.reason,
        )


class AuthorizationError(DAVError):
    """
    The server answered 401 or 403.  A write against a subscribed
    (read-only) calendar ends up here as well.  The url property will
    contain the url in question, the reason property will contain the
    excuse the server sent.
    """

    pass


class PropfindError(DAVError):
    pass


class ReportError(DAVError):
    pass


class MkcalendarError(DAVError):
    pass


class PutError(DAVError):
    pass


class DeleteError(DAVError):
    pass


class PostError(DAVError):
    pass


class OCSError(DAVError):
    """The OCS sharing API returned a failure envelope"""

    pass


class DomainError(DAVError):
    """
    Base class for outcomes the caller is expected to branch on rather
    than treat as fatal.  ``kind`` is a stable tag for each subclass.
    """

    kind: str = "domain"

    def __str__(self) -> str:
        if self.url:
            return "%s: %s (%s)" % (self.kind, self.reason, self.url)
        return "%s: %s" % (self.kind, self.reason)


class NotSupportedError(DomainError):
    kind = "not-supported"
    reason = "operation not supported by this backend"


class AlreadyPublishedError(DomainError):
    kind = "already-published"
    reason = "list is already published"


class NotPublishedError(DomainError):
    kind = "not-published"
    reason = "list is not published"


class NotFoundError(DomainError):
    kind = "not-found"
    reason = "list not found"


exception_by_method: Dict[str, DAVError] = defaultdict(lambda: DAVError)
for method in (
    "delete",
    "put",
    "post",
    "mkcalendar",
    "report",
    "propfind",
):
    exception_by_method[method] = locals()[method[0].upper() + method[1:] + "Error"]
