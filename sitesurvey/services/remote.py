"""Client for the remote survey store.

The store exposes three write operations this engine depends on: store the
survey JSON, store the updated camera placements, store one photo. All of them
are scoped to a project destination handed over by the setup layer.
"""
import base64
import binascii
import json
import logging
import time
from typing import Protocol

import httpx

from sitesurvey.schemas.upload import ProjectDestination

logger = logging.getLogger(__name__)


class RemoteStoreError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RemoteUnavailableError(RemoteStoreError):
    """The remote could not be reached at all (DNS, refused, timeout)."""


class AuthContext:
    """Bearer token with an explicit lifecycle: issued, refreshed, cleared."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self.token: str | None = None
        self.issued_at: float | None = None
        self.expires_at: float | None = None

    @staticmethod
    def token_claims(token: str) -> dict | None:
        """Decode a JWT payload without verifying it; the server already did."""
        parts = token.split(".")
        if len(parts) != 3:
            return None
        segment = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(segment))
        except (binascii.Error, ValueError):
            return None
        return claims if isinstance(claims, dict) else None

    def issue(self, token: str, expires_in: float | None = None) -> None:
        now = self._clock()
        self.token = token
        self.issued_at = now
        if expires_in is not None:
            self.expires_at = now + expires_in
        else:
            claims = self.token_claims(token) or {}
            exp = claims.get("exp")
            self.expires_at = float(exp) if isinstance(exp, (int, float)) else None
        logger.info("Auth token issued (expires_at=%s)", self.expires_at)

    def refresh(self, token: str, expires_in: float | None = None) -> None:
        if self.token is None:
            raise RuntimeError("Cannot refresh: no token was issued")
        self.issue(token, expires_in)

    def clear(self) -> None:
        self.token = None
        self.issued_at = None
        self.expires_at = None

    @property
    def is_valid(self) -> bool:
        if self.token is None:
            return False
        if self.expires_at is not None and self.expires_at <= self._clock():
            logger.info("Auth token expired, clearing")
            self.clear()
            return False
        return True

    def bearer(self) -> str | None:
        return self.token if self.is_valid else None

    def claims(self) -> dict | None:
        token = self.bearer()
        return self.token_claims(token) if token else None


class RemoteStore(Protocol):
    async def store_survey(self, destination: ProjectDestination, payload: dict, idempotency_key: str) -> dict: ...

    async def store_placements(self, destination: ProjectDestination, placements: dict, idempotency_key: str) -> dict: ...

    async def store_photo(
        self, destination: ProjectDestination, data_url: str, filename: str, idempotency_key: str
    ) -> dict: ...


def split_data_url(data_url: str) -> tuple[str, str]:
    """Return ``(content_type, base64_data)`` from a ``data:`` URL."""
    header, _, data = data_url.partition(",")
    content_type = "image/jpeg"
    if header.startswith("data:"):
        content_type = header[5:].split(";", 1)[0] or content_type
    return content_type, data


class SurveyApiClient:
    def __init__(
        self,
        base_url: str,
        auth: AuthContext,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def _request(self, method: str, path: str, payload: dict | None = None, headers: dict | None = None) -> dict:
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        token = self.auth.bearer()
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        try:
            async with self._client() as client:
                response = await client.request(method, path, json=payload, headers=request_headers)
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"Survey API unreachable: {e}") from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = body.get("error") if isinstance(body, dict) else None
            raise RemoteStoreError(message or f"Request failed: {response.status_code}", response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def get_project_config(self, project_code: str) -> dict:
        return await self._request("GET", f"/project/{project_code}")

    async def get_camera_data(self, project_code: str) -> dict:
        return await self._request("GET", f"/project/{project_code}/cameras")

    async def store_survey(self, destination: ProjectDestination, payload: dict, idempotency_key: str) -> dict:
        return await self._request(
            "POST", f"/project/{destination.project_code}/survey", payload,
            headers={"Idempotency-Key": idempotency_key},
        )

    async def store_placements(self, destination: ProjectDestination, placements: dict, idempotency_key: str) -> dict:
        return await self._request(
            "POST", f"/project/{destination.project_code}/placements", placements,
            headers={"Idempotency-Key": f"{idempotency_key}:placements"},
        )

    async def store_photo(
        self, destination: ProjectDestination, data_url: str, filename: str, idempotency_key: str
    ) -> dict:
        content_type, data = split_data_url(data_url)
        return await self._request(
            "POST", f"/project/{destination.project_code}/photos",
            {"photo": data, "filename": filename, "contentType": content_type},
            headers={"Idempotency-Key": f"{idempotency_key}:{filename}"},
        )


class ConnectivityProbe:
    """Answers "can we reach the survey API right now?"."""

    def __init__(self, base_url: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def __call__(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                await client.get(self.base_url or "/")
        except httpx.TransportError:
            return False
        return True
