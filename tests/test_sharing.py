"""
Publishing through the OCS sharing API, and sharing calendars with
other users.
"""
from unittest import mock

import pytest
from fixture_helpers import FakeNextcloud
from fixture_helpers import make_config
from fixture_helpers import make_response
from lxml import etree
from tasksync.backend import ShareType
from tasksync.lib import error
from tasksync.nextcloud import NextcloudBackend
from tasksync.protocol import ocs
from tasksync.protocol.types import OCSResult

CALENDAR_PATH = "/remote.php/dav/calendars/testuser/tasks"


@pytest.fixture
def server():
    server = FakeNextcloud()
    server.add_calendar("tasks", "Tasks")
    with mock.patch("tasksync.davclient.requests.Session.request", side_effect=server):
        yield server


@pytest.fixture
def backend(server):
    with NextcloudBackend(make_config()) as backend:
        yield backend


class TestPublish:
    def testPublish(self, server, backend):
        url = backend.publish_list("tasks")
        assert url == "https://nc.example.com/s/tok1"

        method, request_url, headers, body = server.requests[-1]
        assert method == "POST"
        assert request_url == "https://nc.example.com/ocs/v2.php/apps/files_sharing/api/v1/shares"
        assert headers["OCS-APIRequest"] == "true"
        assert headers["Accept"] == "application/json"
        assert headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert body == b"path=%2Fremote.php%2Fdav%2Fcalendars%2Ftestuser%2Ftasks&shareType=3"

    def testRepublish(self, server, backend):
        backend.publish_list("tasks")
        with pytest.raises(error.AlreadyPublishedError) as excinfo:
            backend.publish_list("tasks")
        assert "already published" in str(excinfo.value)
        assert excinfo.value.kind == "already-published"

    def testPublishUnknownList(self, backend):
        with pytest.raises(error.NotFoundError):
            backend.publish_list("nope")

    def testAlreadySharedInV1Envelope(self, server, backend):
        ## OCS v1 answers HTTP 200, only the envelope tells
        body = '{"ocs": {"meta": {"status": "failure", "statuscode": 403, "message": "Path is already shared"}, "data": []}}'
        with mock.patch.object(
            server, "_ocs", return_value=make_response(200, body, "application/json")
        ):
            with pytest.raises(error.AlreadyPublishedError):
                backend.publish_list("tasks")

    def testForbiddenWithoutBody(self, server, backend):
        with mock.patch.object(server, "_ocs", return_value=make_response(403)):
            with pytest.raises(error.AlreadyPublishedError):
                backend.publish_list("tasks")

    def testUnreadableResponse(self, server, backend):
        with mock.patch.object(
            server, "_ocs", return_value=make_response(500, "<html>oops</html>", "text/html")
        ):
            with pytest.raises(error.OCSError):
                backend.publish_list("tasks")

    def testListIdNeedingQuotes(self, server, backend):
        server.add_calendar("my list", "My list")
        assert backend.publish_list("my list") == "https://nc.example.com/s/tok1"
        assert b"path=%2Fremote.php%2Fdav%2Fcalendars%2Ftestuser%2Fmy+list&" in server.requests[-1][3]
        [share] = backend.list_shares("my list")
        assert share.path == CALENDAR_PATH.replace("tasks", "my list")
        backend.unpublish_list("my list")
        assert server.shares == {}

    def testTimeout(self, server, backend):
        backend.publish_list("tasks", timeout=2)
        backend.list_shares("tasks", timeout=3)
        backend.unpublish_list("tasks", timeout=4)
        ## unpublishing looks the share up first
        assert server.timeouts == [2, 3, 4, 4]

    def testOtherFailure(self, server, backend):
        body = '{"ocs": {"meta": {"status": "failure", "statuscode": 400, "message": "unknown share type"}, "data": []}}'
        with mock.patch.object(
            server, "_ocs", return_value=make_response(400, body, "application/json")
        ):
            with pytest.raises(error.OCSError) as excinfo:
                backend.publish_list("tasks")
        assert "unknown share type" in str(excinfo.value)


class TestUnpublish:
    def testUnpublish(self, server, backend):
        backend.publish_list("tasks")
        backend.unpublish_list("tasks")
        assert server.shares == {}
        method, url, headers, body = server.requests[-1]
        assert method == "DELETE"
        assert url.endswith("/ocs/v2.php/apps/files_sharing/api/v1/shares/1")
        assert headers["OCS-APIRequest"] == "true"

        ## and it can be published again
        assert backend.publish_list("tasks") == "https://nc.example.com/s/tok2"

    def testNeverPublished(self, backend):
        with pytest.raises(error.NotPublishedError) as excinfo:
            backend.unpublish_list("tasks")
        assert "not published" in str(excinfo.value)

    def testUnpublishTwice(self, backend):
        backend.publish_list("tasks")
        backend.unpublish_list("tasks")
        with pytest.raises(error.NotPublishedError):
            backend.unpublish_list("tasks")

    def testOnlyPublicLinksAreRemoved(self, server, backend):
        server.shares[7] = {
            "id": 7,
            "share_type": 0,
            "path": CALENDAR_PATH,
            "token": None,
            "url": "",
        }
        with pytest.raises(error.NotPublishedError):
            backend.unpublish_list("tasks")
        assert 7 in server.shares


class TestListShares:
    def testListShares(self, server, backend):
        server.add_calendar("other")
        backend.publish_list("tasks")
        backend.publish_list("other")
        [share] = backend.list_shares("tasks")
        assert share.id == 1
        assert share.path == CALENDAR_PATH
        assert share.share_type == ShareType.PUBLIC_LINK
        assert share.token == "tok1"

        method, url, headers, body = server.requests[-1]
        assert method == "GET"
        assert "path=%2Fremote.php%2Fdav%2Fcalendars%2Ftestuser%2Ftasks" in url

    def testNoShares(self, backend):
        assert backend.list_shares("tasks") == []


class TestShareWithUser:
    def testReadOnly(self, server, backend):
        backend.share_list("tasks", "bob")
        assert server.calendars["tasks"].user_shares == {"bob": "read"}

        method, url, headers, body = server.requests[-1]
        assert method == "POST"
        assert url == backend.base_url + "tasks/"
        tree = etree.fromstring(body)
        assert tree.tag == "{http://owncloud.org/ns}share"

    def testReadWrite(self, server, backend):
        backend.share_list("tasks", "bob", "write")
        assert server.calendars["tasks"].user_shares == {"bob": "write"}

    def testUnshare(self, server, backend):
        backend.share_list("tasks", "bob", "write")
        backend.unshare_list("tasks", "bob")
        assert server.calendars["tasks"].user_shares == {}

    def testAdmin(self, server, backend):
        backend.share_list("tasks", "bob", "admin")
        assert server.calendars["tasks"].user_shares == {"bob": "admin"}
        tree = etree.fromstring(server.requests[-1][3])
        assert tree.find("{http://owncloud.org/ns}set/{http://owncloud.org/ns}all") is not None

    def testAllPermissions(self, server, backend):
        for permission in ("read", "write", "admin"):
            backend.share_list("tasks", "user_%s" % permission, permission)
        assert server.calendars["tasks"].user_shares == {
            "user_read": "read",
            "user_write": "write",
            "user_admin": "admin",
        }

    def testTimeout(self, server, backend):
        backend.share_list("tasks", "bob", "write", timeout=2)
        backend.unshare_list("tasks", "bob", timeout=3)
        assert server.timeouts == [2, 3]

    @pytest.mark.parametrize("user,permission", [("bob", "owner"), ("bob", ""), ("", "read")])
    def testInvalid(self, server, backend, user, permission):
        with pytest.raises(ValueError):
            backend.share_list("tasks", user, permission)
        assert server.requests == []

    def testUnknownCalendar(self, backend):
        with pytest.raises(error.NotFoundError):
            backend.share_list("nope", "bob")


class TestOcsHelpers:
    def testParseEnvelope(self):
        result = ocs.parse_ocs_response(
            b'{"ocs": {"meta": {"status": "ok", "statuscode": "100", "message": null}, "data": {"id": "3"}}}'
        )
        assert result.ok
        assert result.statuscode == 100
        assert result.message == ""
        assert ocs.share_from_data(result.data).id == 3

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"something": "else"}'])
    def testNotAnEnvelope(self, body):
        with pytest.raises(ValueError):
            ocs.parse_ocs_response(body)

    def testClassification(self):
        assert ocs.is_already_shared(OCSResult(statuscode=403))
        assert ocs.is_already_shared(OCSResult(statuscode=400, message="Path is already shared with this group"))
        assert not ocs.is_already_shared(OCSResult(statuscode=404, message="Wrong path, file/folder doesn't exist"))
        assert ocs.is_not_found(OCSResult(statuscode=404))
        assert ocs.is_not_found(OCSResult(statuscode=998, message="Share not found"))

    def testSharesFromSingleObject(self):
        shares = ocs.shares_from_data({"id": 5, "share_type": 3, "token": "abc"})
        assert [(s.id, s.token) for s in shares] == [(5, "abc")]
        assert ocs.shares_from_data(None) == []

    def testPublicUrl(self):
        [share] = ocs.shares_from_data([{"id": 1, "token": "abc", "url": "https://elsewhere/x"}])
        assert ocs.public_url("https://nc.example.com/", share) == "https://nc.example.com/s/abc"
        share.token = ""
        assert ocs.public_url("https://nc.example.com", share) == "https://elsewhere/x"

    def testGarbledShareFields(self):
        share = ocs.share_from_data({"id": "abc", "share_type": None, "token": None})
        assert share.id == 0
        assert share.share_type == ShareType.PUBLIC_LINK
        assert share.token == ""
