from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

GPX_CONTENT_TYPE = "application/gpx+xml"


class BoatlyAPIError(Exception):
    """A call to the passage import service failed (transport error, timeout or non-2xx)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class BoatlyCredentials:
    token: str
    user_id: str


@dataclass(frozen=True)
class SignedImport:
    url: str
    passage_id: str


class BoatlyClient:
    BASE_URL = "https://boatly-api.herokuapp.com/v1"

    def __init__(self, base_url: str | None = None, timeout_s: float = 20.0):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout_s = timeout_s

    @staticmethod
    def _headers(token: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            r = httpx.request(
                method=method,
                url=url,
                headers=self._headers(token),
                params=params,
                json=json,
                timeout=self.timeout_s,
            )
            r.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("Boatly returned HTTP %s for %s %s", status, method, path)
            raise BoatlyAPIError(f"{method} {path} failed with HTTP {status}", status_code=status) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Boatly request %s %s failed: %s", method, path, exc.__class__.__name__)
            raise BoatlyAPIError(f"{method} {path} failed: {exc}") from exc

        if not r.content:
            return {}
        try:
            data = r.json()
        except ValueError as exc:
            raise BoatlyAPIError(f"{method} {path} returned invalid JSON", status_code=r.status_code) from exc
        if not isinstance(data, dict):
            raise BoatlyAPIError(f"{method} {path} returned an unexpected payload", status_code=r.status_code)
        return data

    def authenticate(self, email: str, password: str) -> BoatlyCredentials:
        data = self._request_json("POST", "/authenticate", json={"email": email, "password": password})
        token = data.get("JWT")
        user_id = data.get("user_id")
        if not token or not user_id:
            raise BoatlyAPIError("Authentication response is missing JWT or user_id")
        return BoatlyCredentials(token=token, user_id=str(user_id))

    def get_signed_import_url(self, token: str, file_name: str) -> SignedImport:
        data = self._request_json("GET", "/s3/signimport", token=token, params={"file-name": file_name})
        url = data.get("url")
        passage_id = data.get("passageid")
        if not url or passage_id is None:
            raise BoatlyAPIError("Signed import response is missing url or passageid")
        if not isinstance(url, str):
            raise BoatlyAPIError("Signed import url is not a string")
        return SignedImport(url=url, passage_id=str(passage_id))

    def upload_file(self, url: str, path: Path) -> None:
        """Stream the file at ``path`` to a presigned object-storage URL."""
        path = Path(path)
        try:
            size = path.stat().st_size
            with path.open("rb") as f:
                r = httpx.put(
                    url,
                    content=f,
                    headers={"Content-Type": GPX_CONTENT_TYPE, "Content-Length": str(size)},
                    timeout=self.timeout_s,
                )
            r.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise BoatlyAPIError(f"Upload failed with HTTP {status}", status_code=status) from exc
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            raise BoatlyAPIError(f"Upload failed: {exc}") from exc

    def queue_import(self, token: str, file_name: str, user_id: str, passage_id: str) -> None:
        payload = {"filename": file_name, "userid": user_id, "passageid": passage_id}
        self._request_json("POST", "/mq/import", token=token, json=payload)
