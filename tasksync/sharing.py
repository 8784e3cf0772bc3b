#!/usr/bin/env python
"""
Sharing of calendars.

Public links go through the Nextcloud OCS files_sharing API, which
speaks form-encoded requests and JSON responses.  Sharing with other
users goes through the owncloud CalDAV sharing extension, a POST of a
small XML document to the calendar itself.  Read, write and admin
access can be granted; admin is read-write plus the right to manage
the shares.
"""
import logging
from typing import List
from typing import Optional
from urllib.parse import urlencode

from tasksync.backend import Share
from tasksync.backend import ShareType
from tasksync.davclient import DAVClient
from tasksync.davclient import DAVResponse
from tasksync.lib import error
from tasksync.lib.url import URL
from tasksync.protocol import ocs
from tasksync.protocol import xml_builders
from tasksync.protocol.types import OCSResult

log = logging.getLogger("tasksync")

PERMISSIONS = ("read", "write", "admin")


class ShareClient:
    """
    Talks to the OCS sharing endpoint below ``root`` (the server URL,
    without the DAV path).
    """

    def __init__(self, client: DAVClient, root: URL) -> None:
        self.client = client
        self.root = URL.objectify(root)

    @property
    def shares_url(self) -> URL:
        return self.root.join(self.root.path.rstrip("/") + ocs.SHARES_PATH)

    def _envelope(self, response: DAVResponse) -> OCSResult:
        """The envelope of a response, OCSError if there is none"""
        try:
            return ocs.parse_ocs_response(response.content)
        except ValueError as err:
            raise error.OCSError(
                url=response.url or str(self.shares_url),
                reason="unreadable OCS response (HTTP %i): %s" % (response.status, err),
            )

    def publish(self, path: str, timeout: Optional[float] = None) -> str:
        """
        Creates a public link share for the calendar at ``path`` and
        returns its URL.

        Raises:
            AlreadyPublishedError: the calendar already has a public link
            NotFoundError: the server doesn't know the path
        """
        url = str(self.shares_url)
        response = self.client.post(
            url,
            ocs.build_share_form(path, ShareType.PUBLIC_LINK),
            {**ocs.OCS_HEADERS, "Content-Type": "application/x-www-form-urlencoded"},
            timeout=timeout,
        )
        ## OCS v2 mirrors the envelope status in the HTTP status, v1
        ## answers 200 and only the envelope tells
        if response.status in (403, 404) and not response.content:
            result = OCSResult(statuscode=response.status, message=response.reason)
        else:
            result = self._envelope(response)
        if not result.ok or response.status >= 400:
            if ocs.is_already_shared(result) or response.status == 403:
                raise error.AlreadyPublishedError(url=path)
            if ocs.is_not_found(result) or response.status == 404:
                raise error.NotFoundError(url=path)
            raise error.OCSError(url=url, reason=result.message or str(result.statuscode))

        share = ocs.share_from_data(result.data or {})
        log.debug("published %s as share %i", path, share.id)
        return ocs.public_url(str(self.root), share)

    def shares(
        self,
        path: str,
        share_type: Optional[ShareType] = None,
        timeout: Optional[float] = None,
    ) -> List[Share]:
        """Lists the shares of ``path``, optionally only those of one type"""
        url = "%s?%s" % (self.shares_url, urlencode({"path": path}))
        response = self.client.get(url, ocs.OCS_HEADERS, timeout=timeout)
        if response.status == 404:
            raise error.NotFoundError(url=path)
        result = self._envelope(response)
        if not result.ok:
            if ocs.is_not_found(result):
                raise error.NotFoundError(url=path)
            raise error.OCSError(url=url, reason=result.message or str(result.statuscode))
        shares = ocs.shares_from_data(result.data)
        if share_type is not None:
            shares = [x for x in shares if x.share_type == share_type]
        return shares

    def unpublish(self, path: str, timeout: Optional[float] = None) -> None:
        """
        Removes the public link share of ``path``.

        Raises:
            NotPublishedError: there is no public link to remove
        """
        public = self.shares(path, ShareType.PUBLIC_LINK, timeout=timeout)
        if not public:
            raise error.NotPublishedError(url=path)
        for share in public:
            url = str(self.shares_url.join("%s/%i" % (self.shares_url.path, share.id)))
            response = self.client.delete(url, ocs.OCS_HEADERS, timeout=timeout)
            if response.status == 404:
                raise error.NotPublishedError(url=path)
            result = self._envelope(response)
            if not result.ok:
                raise error.OCSError(url=url, reason=result.message or str(result.statuscode))

    def share_with_user(
        self,
        calendar_url: URL,
        user: str,
        permission: str = "read",
        timeout: Optional[float] = None,
    ) -> None:
        """
        Grants ``user`` read, write or admin access to a calendar.
        Sharing again with another permission replaces the old one.
        """
        if not user:
            raise ValueError("a user name is required")
        if permission not in PERMISSIONS:
            raise ValueError(
                "invalid permission %r, expected one of %s" % (permission, ", ".join(PERMISSIONS))
            )
        body = xml_builders.build_share_body(
            principal_href(user),
            read_write=permission in ("write", "admin"),
            admin=(permission == "admin"),
        )
        self._post_share(calendar_url, body, timeout=timeout)

    def unshare_with_user(
        self, calendar_url: URL, user: str, timeout: Optional[float] = None
    ) -> None:
        if not user:
            raise ValueError("a user name is required")
        self._post_share(
            calendar_url,
            xml_builders.build_unshare_body(principal_href(user)),
            timeout=timeout,
        )

    def _post_share(
        self, calendar_url: URL, body: bytes, timeout: Optional[float] = None
    ) -> None:
        url = str(calendar_url)
        response = self.client.post(url, body, timeout=timeout)
        if response.status == 404:
            raise error.NotFoundError(url=url)
        if response.status == 403:
            raise error.AuthorizationError(url=url, reason=response.reason)
        if response.status not in (200, 201, 204):
            raise error.PostError(url=url, reason=error.errmsg(response))


def principal_href(user: str) -> str:
    return "principal:principals/users/%s" % user
