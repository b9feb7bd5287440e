"""HTTP client for the door station's CGI endpoints.

Both endpoints sit behind HTTP digest authentication with the same
credentials as the control channel.
"""

from __future__ import annotations

import datetime
from pathlib import Path

import aiohttp

from vto_bridge.const import HTTP_TIMEOUT
from vto_bridge.logging_abstraction import get_logger
from vto_bridge.protocol.exceptions import DeviceInfoError
from vto_bridge.structs import Credentials, DeviceIdentity

logger = get_logger(__name__)

SYSTEM_INFO_PATH = "/cgi-bin/magicBox.cgi?action=getSystemInfo"
SNAPSHOT_PATH = "/cgi-bin/snapshot.cgi"


def parse_system_info(text: str) -> dict[str, str]:
    """Parse the plain-text ``key=value`` body returned by getSystemInfo.

    Lines are split on the first ``=`` only; lines without one are skipped.
    """
    details: dict[str, str] = {}
    for line in text.strip().splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        details[key.strip()] = value.strip()
    return details


def snapshot_filename(now: datetime.datetime) -> str:
    """``DoorBell_YYYY-M-D-H-M-S.jpg`` with unpadded fields."""
    return f"DoorBell_{now.year}-{now.month}-{now.day}-{now.hour}-{now.minute}-{now.second}.jpg"


class DeviceInfoClient:
    """Digest-authenticated access to device details and snapshots."""

    lp: str = "DeviceInfo"
    http_session: aiohttp.ClientSession | None = None

    def __init__(self, host: str, credentials: Credentials, api_timeout: int = HTTP_TIMEOUT) -> None:
        self.host = host
        self.credentials = credentials
        self.api_timeout = api_timeout
        self.base_url = f"http://{host}"

    async def close(self) -> None:
        """Close the aiohttp session if it exists and is not closed."""
        if self.http_session and not self.http_session.closed:
            logger.debug("%s:close: Closing aiohttp ClientSession", self.lp)
            await self.http_session.close()
        self.http_session = None

    async def _check_session(self) -> aiohttp.ClientSession:
        if not self.http_session or self.http_session.closed:
            logger.debug("%s:_check_session: Creating new aiohttp ClientSession", self.lp)
            digest = aiohttp.DigestAuthMiddleware(login=self.credentials.username, password=self.credentials.password)
            self.http_session = aiohttp.ClientSession(
                middlewares=(digest,),
                timeout=aiohttp.ClientTimeout(total=self.api_timeout),
            )
        return self.http_session

    async def _get(self, path: str) -> bytes:
        lp = f"{self.lp}:get:"
        session = await self._check_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.get(url) as r:
                r.raise_for_status()
                return await r.read()
        except aiohttp.ClientResponseError as e:
            logger.error("%s %s returned HTTP %s", lp, path, e.status, extra={"host": self.host})
            raise DeviceInfoError(f"http_{e.status}") from e
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error("%s %s failed: %s", lp, path, e, extra={"host": self.host, "error_type": type(e).__name__})
            raise DeviceInfoError(f"request_failed: {type(e).__name__}") from e

    async def fetch_identity(self) -> DeviceIdentity:
        """Fetch device type and serial number.

        Raises:
            DeviceInfoError: request failed or a field is missing
        """
        lp = f"{self.lp}:fetch_identity:"
        body = await self._get(SYSTEM_INFO_PATH)
        details = parse_system_info(body.decode("utf-8", errors="replace"))
        device_type = details.get("deviceType")
        serial_number = details.get("serialNumber")
        if not device_type or not serial_number:
            logger.error("%s Missing deviceType/serialNumber", lp, extra={"keys": sorted(details)})
            raise DeviceInfoError("missing_field")
        identity = DeviceIdentity(device_type=device_type, serial_number=serial_number)
        logger.info(
            "%s Device identified",
            lp,
            extra={"device_type": identity.device_type, "serial_number": identity.serial_number},
        )
        return identity

    async def save_snapshot(self, directory: str | Path = "/tmp/") -> Path:
        """Download the current camera image into ``directory``.

        Returns:
            Path of the written JPEG

        Raises:
            DeviceInfoError: request failed or the file could not be written
        """
        lp = f"{self.lp}:save_snapshot:"
        image = await self._get(SNAPSHOT_PATH)
        destination = Path(directory).expanduser() / snapshot_filename(datetime.datetime.now())
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            _ = destination.write_bytes(image)
        except OSError as e:
            logger.error("%s Error saving snapshot to %s: %s", lp, destination, e)
            raise DeviceInfoError("write_failed") from e
        logger.info("%s Snapshot saved", lp, extra={"path": str(destination), "bytes": len(image)})
        return destination
