"""Auth token validation and device-code login against the hosted API."""

import asyncio
from typing import Any

import httpx
from pydantic import BaseModel

from tenx.config import AuthConfig
from tenx.exceptions import AuthError
from tenx.logging import get_logger

log = get_logger(__name__)

DEVICE_CODE_DEFAULT_EXPIRES = 900
DEVICE_CODE_DEFAULT_INTERVAL = 5
SLOW_DOWN_STEP = 5.0
MAX_POLL_ATTEMPTS = 180


class DeviceCode(BaseModel):
    device_code: str
    user_code: str
    verification_url: str
    expires_in: int = DEVICE_CODE_DEFAULT_EXPIRES
    interval: int = DEVICE_CODE_DEFAULT_INTERVAL


class AccessToken(BaseModel):
    access_token: str
    expires_at: int | None = None


class DeviceAuthError(AuthError):
    """Device flow failure with the server's error code."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


_POLL_FAILURES = {
    "expired_token": "Device code has expired. Please try again.",
    "access_denied": "Authorization was denied.",
    "invalid_code": "Invalid device code.",
}


def format_user_code(code: str) -> str:
    """ABCD1234 -> ABCD-1234."""
    if len(code) == 8 and "-" not in code:
        return f"{code[:4]}-{code[4:]}"
    return code


class AuthClient:
    """Talks to the hosted API's auth endpoints."""

    def __init__(self, config: AuthConfig | None = None, client: httpx.AsyncClient | None = None):
        self.config = config or AuthConfig()
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._owns_client = client is None

    def _url(self, path: str) -> str:
        return f"{self.config.api_url.rstrip('/')}{path}"

    async def validate_token(self, token: str | None = None) -> bool:
        """Check a token with the server.

        A network failure yields `trust_on_network_error`; any HTTP response
        other than 2xx means the token is invalid.
        """
        token = token if token is not None else self.config.token
        if not token:
            return False
        try:
            response = await self._client.post(
                self._url("/api/auth/validate"),
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            log.warning(
                "Token validation unreachable",
                error=str(e),
                trusted=self.config.trust_on_network_error,
            )
            return self.config.trust_on_network_error
        return response.is_success

    async def request_device_code(self) -> DeviceCode:
        try:
            response = await self._client.post(self._url("/api/auth/device"))
        except httpx.HTTPError as e:
            raise DeviceAuthError("network_error", f"Failed to connect to server: {e}") from e

        data = self._json(response)
        if not response.is_success:
            raise DeviceAuthError(
                "unknown_error",
                data.get("message") or f"Failed to request device code: {response.status_code}",
            )
        return DeviceCode(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_url=data.get("verification_uri") or self._url("/auth/device"),
            expires_in=data.get("expires_in") or DEVICE_CODE_DEFAULT_EXPIRES,
            interval=data.get("interval") or DEVICE_CODE_DEFAULT_INTERVAL,
        )

    async def poll_for_token(
        self,
        device_code: str,
        interval: float = DEVICE_CODE_DEFAULT_INTERVAL,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        abort_event: asyncio.Event | None = None,
    ) -> AccessToken:
        """Poll until the user approves the device code.

        Raises:
            DeviceAuthError on denial, expiry, an invalid code or cancellation
        """
        for _ in range(max_attempts):
            if await self._wait(interval, abort_event):
                raise DeviceAuthError("cancelled", "Device authorization cancelled.")

            try:
                response = await self._client.post(
                    self._url("/api/auth/device/token"),
                    json={"deviceCode": device_code},
                )
            except httpx.HTTPError as e:
                log.warning("Device token poll failed", error=str(e))
                continue

            data = self._json(response)
            if response.is_success and data.get("accessToken"):
                return AccessToken(access_token=data["accessToken"], expires_at=data.get("expiresAt"))

            error = data.get("error")
            if error == "authorization_pending":
                continue
            if error == "slow_down":
                interval += SLOW_DOWN_STEP
                continue
            if error in _POLL_FAILURES:
                raise DeviceAuthError(error, _POLL_FAILURES[error])
            if error:
                raise DeviceAuthError("unknown_error", data.get("message") or "Unknown error")

        raise DeviceAuthError("expired_token", "Polling timed out. Please try again.")

    @staticmethod
    async def _wait(seconds: float, abort_event: asyncio.Event | None) -> bool:
        """Sleep; True when the abort event fired first."""
        if abort_event is None:
            await asyncio.sleep(seconds)
            return False
        try:
            await asyncio.wait_for(abort_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
