#!/usr/bin/env python
import logging
import threading
import time
from types import TracebackType
from typing import Mapping
from typing import Optional
from typing import Union

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from requests.models import Response
from requests.structures import CaseInsensitiveDict

from tasksync import __version__
from tasksync.lib import error
from tasksync.lib.python_utilities import to_normal_str
from tasksync.lib.python_utilities import to_wire
from tasksync.lib.url import URL

"""
The ``DAVClient`` class handles the basic communication with the
server: one pooled ``requests`` session, basic authentication on every
request, and one method per HTTP verb the backend needs.  It knows
nothing about calendars or tasks.

The ``DAVResponse`` class wraps the data returned from the server.
Parsing the body is left to ``tasksync.protocol``.
"""

log = logging.getLogger("tasksync")

## Connection pool settings: at most 10 host pools are cached, each
## keeping at most 2 connections around.  Pools unused for 30 seconds
## are dropped, and a single request may take at most 30 seconds.
POOL_CONNECTIONS = 10
POOL_MAXSIZE = 2
IDLE_TIMEOUT = 30
DEFAULT_TIMEOUT = 30


class DAVResponse:
    """
    This class is a response from a request.  It is instantiated from
    the DAVClient class.  End users of the library should not need to
    know anything about this class.
    """

    reason: str = ""
    headers: CaseInsensitiveDict = None
    status: int = 0
    url: str = ""

    def __init__(self, response: Response) -> None:
        self.headers = response.headers
        self.status = response.status_code
        self.url = response.url
        log.debug("response headers: " + str(self.headers))
        log.debug("response status: " + str(self.status))

        self._raw = response.content or b""

        content_type = self.headers.get("Content-Type", "")
        known = [
            "text/xml",
            "application/xml",
            "application/json",
            "text/plain",
            "text/calendar",
            "application/octet-stream",
        ]
        if (
            content_type
            and not any(content_type.startswith(x) for x in known)
            and response.status_code < 400
        ):
            error.weirdness(f"Unexpected content type: {content_type}")
        if self._raw:
            log.debug(self._raw)
        else:
            log.debug("No content delivered")

        ## incidents with a response without a reason has been observed
        try:
            self.reason = response.reason or ""
        except AttributeError:
            self.reason = ""

    @property
    def raw(self) -> str:
        return to_normal_str(self._raw)

    @property
    def content(self) -> bytes:
        return self._raw


class DAVClient:
    """
    Basic client for webdav, uses the requests lib; gives access to
    low-level operations towards the server.

    The client is safe to share between threads; the only state is
    the session's connection pool.
    """

    url: URL = None

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        ssl_verify_cert: Union[bool, str] = True,
        headers: Optional[Mapping[str, str]] = None,
        idle_timeout: float = IDLE_TIMEOUT,
    ) -> None:
        """
        Sets up a pooled session towards the server in the url.

        Args:
          url: A fully qualified url: `scheme://hostname:port/path`
          username, password: credentials for basic auth
          timeout: seconds before a request is abandoned
          ssl_verify_cert: False to skip certificate validation, or the
            path of a CA bundle
          idle_timeout: seconds after which unused pooled connections
            are dropped
        """
        self.session = requests.Session()
        self.adapter = HTTPAdapter(
            pool_connections=POOL_CONNECTIONS, pool_maxsize=POOL_MAXSIZE
        )
        self.session.mount("https://", self.adapter)
        self.session.mount("http://", self.adapter)

        log.debug("url: " + str(url))
        self.url = URL.objectify(url)

        # Build global headers
        self.headers = CaseInsensitiveDict(
            {
                "User-Agent": "tasksync/" + __version__,
                "Content-Type": "application/xml; charset=utf-8",
                "Accept": "text/xml, application/xml, text/calendar",
            }
        )
        self.headers.update(headers or {})

        self.username = username
        self.password = password
        self.auth = None
        if username is not None:
            ## I had problems with passwords with non-ascii letters in it ...
            self.auth = HTTPBasicAuth(
                username.encode("utf-8"), (password or "").encode("utf-8")
            )

        self.timeout = timeout
        self.ssl_verify_cert = ssl_verify_cert
        self.idle_timeout = idle_timeout
        self._last_used: Optional[float] = None
        self._idle_lock = threading.Lock()

    def __enter__(self) -> "DAVClient":
        return self

    def __exit__(
        self,
        exc_type: Optional[BaseException] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[TracebackType] = None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """
        Closes the DAVClient's session object
        """
        self.session.close()

    def _drop_idle_connections(self) -> None:
        now = time.monotonic()
        with self._idle_lock:
            if (
                self._last_used is not None
                and now - self._last_used > self.idle_timeout
            ):
                log.debug("connections idle for too long, dropping them")
                self.adapter.close()
            self._last_used = now

    def propfind(
        self,
        url: Optional[str] = None,
        props: Union[str, bytes] = "",
        depth: int = 0,
        timeout: Optional[float] = None,
    ) -> DAVResponse:
        """
        Send a propfind request.

        Args:
            url: url for the root of the propfind.
            props: XML body with the properties we want
            depth: maximum recursion depth
            timeout: seconds for this request, the client default if None

        Returns:
            DAVResponse
        """
        return self.request(
            url or str(self.url), "PROPFIND", props, {"Depth": str(depth)}, timeout
        )

    def report(
        self,
        url: str,
        query: Union[str, bytes] = "",
        depth: int = 0,
        timeout: Optional[float] = None,
    ) -> DAVResponse:
        """
        Send a report request.

        Args:
            url: url for the root of the report.
            query: XML request
            depth: maximum recursion depth

        Returns
            DAVResponse
        """
        return self.request(url, "REPORT", query, {"Depth": str(depth)}, timeout)

    def mkcalendar(
        self, url: str, body: Union[str, bytes] = "", timeout: Optional[float] = None
    ) -> DAVResponse:
        """
        Send a mkcalendar request.

        Args:
            url: url for the root of the mkcalendar
            body: XML request

        Returns:
            DAVResponse
        """
        return self.request(url, "MKCALENDAR", body, timeout=timeout)

    def get(
        self, url: str, headers: Mapping[str, str] = None, timeout: Optional[float] = None
    ) -> DAVResponse:
        """
        Send a get request.
        """
        return self.request(url, "GET", "", headers or {}, timeout)

    def put(
        self,
        url: str,
        body: Union[str, bytes],
        headers: Mapping[str, str] = None,
        timeout: Optional[float] = None,
    ) -> DAVResponse:
        """
        Send a put request.
        """
        return self.request(url, "PUT", body, headers or {}, timeout)

    def post(
        self,
        url: str,
        body: Union[str, bytes],
        headers: Mapping[str, str] = None,
        timeout: Optional[float] = None,
    ) -> DAVResponse:
        """
        Send a POST request.
        """
        return self.request(url, "POST", body, headers or {}, timeout)

    def delete(
        self, url: str, headers: Mapping[str, str] = None, timeout: Optional[float] = None
    ) -> DAVResponse:
        """
        Send a delete request.
        """
        return self.request(url, "DELETE", "", headers or {}, timeout)

    def request(
        self,
        url: str,
        method: str = "GET",
        body: Union[str, bytes] = "",
        headers: Mapping[str, str] = None,
        timeout: Optional[float] = None,
    ) -> DAVResponse:
        """
        Actually sends the request, with basic auth.

        Network errors (timeouts, refused connections, TLS failures)
        are passed on as the requests exceptions they are; there is no
        retry here.  A 401 raises AuthorizationError, any other status
        is left to the caller.
        """
        combined_headers = self.headers.copy()
        combined_headers.update(headers or {})
        if (body is None or body == "" or body == b"") and "Content-Type" in combined_headers:
            del combined_headers["Content-Type"]

        # objectify the url
        url_obj = URL.objectify(url)

        log.debug(
            "sending request - method={0}, url={1}, headers={2}\nbody:\n{3}".format(
                method, str(url_obj), combined_headers, to_normal_str(body)
            )
        )

        self._drop_idle_connections()
        r = self.session.request(
            method,
            str(url_obj),
            data=to_wire(body) or None,
            headers=combined_headers,
            auth=self.auth,
            timeout=self.timeout if timeout is None else timeout,
            verify=self.ssl_verify_cert,
        )
        log.debug("server responded with %i %s" % (r.status_code, r.reason))
        response = DAVResponse(r)

        # this is an error condition that should be raised to the application
        if response.status == requests.codes.unauthorized:
            raise error.AuthorizationError(url=str(url_obj), reason=response.reason or "None given")

        return response
