"""
Pure functions for the Nextcloud OCS sharing API.

Every OCS response wraps its payload as::

    {"ocs": {"meta": {"status": ..., "statuscode": ..., "message": ...},
             "data": ...}}

The envelope status code is authoritative, the HTTP status is not
always in agreement with it.
"""

import json
from typing import Any
from urllib.parse import urlencode

from tasksync.backend import Share, ShareType

from .types import OCSResult

SHARES_PATH = "/ocs/v2.php/apps/files_sharing/api/v1/shares"

OCS_HEADERS = {
    "OCS-APIRequest": "true",
    "Accept": "application/json",
}


def build_share_form(path: str, share_type: ShareType = ShareType.PUBLIC_LINK) -> str:
    """Form body for creating a share on ``path``"""
    return urlencode({"path": path, "shareType": share_type.value})


def parse_ocs_response(body: bytes | str) -> OCSResult:
    """
    Unwrap an OCS envelope.

    Raises:
        ValueError: If the body is not JSON or has no ``ocs`` envelope
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    document = json.loads(body)
    if not isinstance(document, dict) or "ocs" not in document:
        raise ValueError("not an OCS envelope")
    envelope = document["ocs"] or {}
    meta = envelope.get("meta") or {}
    try:
        statuscode = int(meta.get("statuscode", 0))
    except (TypeError, ValueError):
        statuscode = 0
    return OCSResult(
        status=str(meta.get("status", "")),
        statuscode=statuscode,
        message=str(meta.get("message") or ""),
        data=envelope.get("data"),
    )


def share_from_data(data: dict[str, Any]) -> Share:
    """Fields the server leaves out or sends garbled keep their defaults"""
    try:
        share_type = ShareType(int(data.get("share_type", 3)))
    except (TypeError, ValueError):
        share_type = ShareType.PUBLIC_LINK
    try:
        share_id = int(data.get("id", 0))
    except (TypeError, ValueError):
        share_id = 0
    return Share(
        id=share_id,
        path=data.get("path") or "",
        share_type=share_type,
        token=data.get("token") or "",
        url=data.get("url") or "",
    )


def shares_from_data(data: Any) -> list[Share]:
    """The shares listing is a list, some servers send a single object"""
    if not data:
        return []
    if isinstance(data, dict):
        data = [data]
    return [share_from_data(item) for item in data]


def public_url(root: str, share: Share) -> str:
    """The public link for a share, built from its token where there is one"""
    if share.token:
        return "%s/s/%s" % (root.rstrip("/"), share.token)
    return share.url


def is_already_shared(result: OCSResult) -> bool:
    return result.statuscode == 403 or "already shared" in result.message.lower()


def is_not_found(result: OCSResult) -> bool:
    return result.statuscode == 404 or "not found" in result.message.lower()
