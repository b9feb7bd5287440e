"""Login digest for the two-step global.login handshake."""

from __future__ import annotations

import hashlib


def _md5_upper(text: str) -> str:
    return hashlib.md5(text.encode("utf-8"), usedforsecurity=False).hexdigest().upper()


def derive_login_digest(username: str, password: str, realm: str, random: str) -> str:
    """Derive the password field of the second login request.

    stage1 = MD5("user:realm:password"), stage2 = MD5("user:random:stage1"),
    both rendered as uppercase hex. Returns stage2.
    """
    stage1 = _md5_upper(f"{username}:{realm}:{password}")
    return _md5_upper(f"{username}:{random}:{stage1}")
