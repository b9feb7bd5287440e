"""Outbound request builders for the control channel."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict

from vto_bridge.const import LOGIN_REQUEST_ID, REQUEST_MAGIC

LOGIN_METHOD = "global.login"
ATTACH_METHOD = "eventManager.attach"
KEEPALIVE_METHOD = "global.keepAlive"


class Command(BaseModel):
    """One request to the device, serialized as a JSON object."""

    model_config = ConfigDict(frozen=True)

    id: int
    magic: str = REQUEST_MAGIC
    method: str
    params: dict[str, Any]
    session: int

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


def _login_params(username: str) -> dict[str, Any]:
    return {
        "clientType": "",
        "ipAddr": "(null)",
        "loginType": "Direct",
        "password": "",
        "userName": username,
    }


def initial_login(username: str) -> Command:
    """First login request: empty password, session 0.

    The device answers with a rejection carrying the session id, realm and
    random needed for the digest.
    """
    return Command(id=LOGIN_REQUEST_ID, method=LOGIN_METHOD, params=_login_params(username), session=0)


def digest_login(username: str, digest: str, session_id: int) -> Command:
    params = _login_params(username)
    params["password"] = digest
    params["authorityType"] = "Default"
    return Command(id=LOGIN_REQUEST_ID, method=LOGIN_METHOD, params=params, session=session_id)


def attach_events(request_id: int, session_id: int, codes: Iterable[str] = ("All",)) -> Command:
    return Command(id=request_id, method=ATTACH_METHOD, params={"codes": list(codes)}, session=session_id)


def keep_alive(request_id: int, session_id: int, timeout: int) -> Command:
    return Command(
        id=request_id,
        method=KEEPALIVE_METHOD,
        params={"timeout": timeout, "active": True},
        session=session_id,
    )
