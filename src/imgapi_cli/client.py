"""HTTP client for the IMGAPI image registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from imgapi_cli.errors import ImgapiRequestError, ImgapiTransportError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
JSON_CONTENT_TYPE = "application/json"


@dataclass
class ImgapiClient:
    base_url: str
    auth: Any = None
    channel: str | None = None
    insecure: bool = False
    timeout: float = DEFAULT_TIMEOUT
    retries: int = 2
    user_agent: str = "imgapi-cli"

    def __post_init__(self) -> None:
        self._session = requests.Session()
        retry = Retry(
            total=max(0, int(self.retries)),
            connect=max(0, int(self.retries)),
            read=max(0, int(self.retries)),
            status=max(0, int(self.retries)),
            status_forcelist=(429, 502, 503, 504),
            backoff_factor=0.2,
            allowed_methods=("GET", "HEAD"),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)
        self._session.headers["User-Agent"] = self.user_agent
        self._session.headers["Accept"] = JSON_CONTENT_TYPE
        self._session.verify = not self.insecure
        if self.auth is not None:
            self._session.auth = self.auth

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _params(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        if self.channel:
            merged["channel"] = self.channel
        for key, value in (params or {}).items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            merged[key] = value
        return merged

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_payload: object | None = None,
        data: Any = None,
        headers: Mapping[str, str] | None = None,
        stream: bool = False,
    ) -> requests.Response:
        url = self._url(path)
        log.debug("%s %s params=%s", method, url, dict(params or {}))
        try:
            response = self._session.request(
                method,
                url,
                params=self._params(params),
                json=json_payload,
                data=data,
                headers=dict(headers) if headers else None,
                timeout=self.timeout,
                stream=stream,
            )
        except requests.exceptions.RequestException as exc:
            raise ImgapiTransportError(
                f"{method} {url} failed: {exc}", code=type(exc).__name__
            ) from exc

        log.debug("%s %s -> %s", method, url, response.status_code)
        if response.status_code >= 400:
            raise _request_error(response)
        return response

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ImgapiRequestError(
                f"invalid JSON in response from {method} {path}",
                status_code=response.status_code,
            ) from exc

    def _action(self, uuid: str, action: str, **params: Any) -> dict:
        return self._request("POST", f"/images/{uuid}", params={"action": action, **params})

    def ping(self) -> dict:
        return self._request("GET", "/ping")

    def admin_get_state(self) -> dict:
        return self._request("GET", "/state")

    def list_images(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        limit: int | None = None,
        marker: str | None = None,
    ) -> list[dict]:
        params = dict(filters or {})
        params["limit"] = limit
        params["marker"] = marker
        return self._request("GET", "/images", params=params) or []

    def get_image(self, uuid: str) -> dict:
        return self._request("GET", f"/images/{uuid}")

    def get_image_file(self, uuid: str) -> requests.Response:
        """Open a streaming response for the image file. Caller closes it."""
        return self._send(
            "GET", f"/images/{uuid}/file", headers={"Accept": "*/*"}, stream=True
        )

    def get_image_icon(self, uuid: str) -> requests.Response:
        return self._send(
            "GET", f"/images/{uuid}/icon", headers={"Accept": "*/*"}, stream=True
        )

    def create_image(self, manifest: Mapping[str, Any]) -> dict:
        return self._request("POST", "/images", json_payload=dict(manifest))

    def update_image(self, uuid: str, changes: Mapping[str, Any]) -> dict:
        return self._request(
            "POST", f"/images/{uuid}", params={"action": "update"}, json_payload=dict(changes)
        )

    def import_image(self, manifest: Mapping[str, Any]) -> dict:
        return self._request(
            "POST",
            f"/images/{manifest['uuid']}",
            params={"action": "import"},
            json_payload=dict(manifest),
        )

    def import_remote_image(self, uuid: str, source: str) -> dict:
        return self._action(uuid, "import-remote", source=source)

    def add_image_file(self, uuid: str, body: Iterable[bytes], *, compression: str) -> dict:
        return self._request(
            "PUT",
            f"/images/{uuid}/file",
            params={"compression": compression},
            data=body,
            headers={"Content-Type": "application/octet-stream"},
        )

    def add_image_icon(self, uuid: str, body: Iterable[bytes], *, content_type: str) -> dict:
        return self._request(
            "PUT", f"/images/{uuid}/icon", data=body, headers={"Content-Type": content_type}
        )

    def delete_image_icon(self, uuid: str) -> dict:
        return self._request("DELETE", f"/images/{uuid}/icon")

    def delete_image(self, uuid: str) -> None:
        self._request("DELETE", f"/images/{uuid}")

    def export_image(self, uuid: str, manta_path: str) -> dict:
        return self._action(uuid, "export", manta_path=manta_path)

    def activate_image(self, uuid: str) -> dict:
        return self._action(uuid, "activate")

    def disable_image(self, uuid: str) -> dict:
        return self._action(uuid, "disable")

    def enable_image(self, uuid: str) -> dict:
        return self._action(uuid, "enable")

    def add_image_acl(self, uuid: str, accounts: list[str]) -> dict:
        return self._request(
            "POST", f"/images/{uuid}/acl", params={"action": "add"}, json_payload=list(accounts)
        )

    def remove_image_acl(self, uuid: str, accounts: list[str]) -> dict:
        return self._request(
            "POST", f"/images/{uuid}/acl", params={"action": "remove"}, json_payload=list(accounts)
        )

    def list_channels(self) -> list[dict]:
        return self._request("GET", "/channels") or []

    def channel_add_image(self, uuid: str, channel: str) -> dict:
        return self._request(
            "POST",
            f"/images/{uuid}",
            params={"action": "channel-add"},
            json_payload={"channel": channel},
        )

    def admin_change_image_stor(self, uuid: str, stor: str) -> dict:
        return self._action(uuid, "change-stor", stor=stor)

    def admin_reload_auth_keys(self) -> None:
        self._request("POST", "/state", params={"action": "reload-auth-keys"})


def _request_error(response: requests.Response) -> ImgapiRequestError:
    body: object | None = None
    try:
        body = response.json()
    except ValueError:
        body = None

    code: str | None = None
    message: str | None = None
    if isinstance(body, dict):
        raw_code = body.get("code")
        code = raw_code if isinstance(raw_code, str) else None
        raw_message = body.get("message")
        message = raw_message if isinstance(raw_message, str) else None
    if message is None:
        text = (response.text or "").strip()
        message = f"registry request failed: {response.status_code} {text}".rstrip()
        if code is None:
            body = None
    return ImgapiRequestError(message, status_code=response.status_code, code=code, body=body)


__all__ = ["ImgapiClient"]
