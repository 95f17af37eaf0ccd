from __future__ import annotations

import hashlib
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from snapslock.core.logging import get_logger

log = get_logger(__name__)

DEFAULT_CDN_BASE_URL = "https://api.cloudinary.com"
SEARCH_MAX_RESULTS = 500

_FOLDER_RE = re.compile(r"^[A-Za-z0-9_\-/]{1,200}$")


class CdnError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class CdnConfig:
    cloud_name: str
    api_key: str
    api_secret: str
    base_url: str = DEFAULT_CDN_BASE_URL

    def endpoint(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/v1_1/{self.cloud_name}/{path.lstrip('/')}"

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name.strip() and self.api_key.strip() and self.api_secret.strip())


@dataclass(frozen=True, slots=True)
class CdnResource:
    public_id: str
    secure_url: str
    width: int | None
    height: int | None
    format: str | None

    def to_json(self) -> dict[str, Any]:
        return {
            "public_id": self.public_id,
            "secure_url": self.secure_url,
            "width": self.width,
            "height": self.height,
            "format": self.format,
        }


def normalize_folder(folder: str) -> str:
    folder = (folder or "").strip().strip("/")
    if not folder or ".." in folder or not _FOLDER_RE.match(folder):
        raise ValueError("Unsupported folder")
    return folder


def sign_params(params: Mapping[str, Any], *, api_secret: str) -> str:
    """Upload signature: sha1 over ``k=v`` pairs sorted by key and joined by ``&``, then the secret."""
    items = sorted((str(k), str(v)) for k, v in params.items() if v is not None and str(v) != "")
    to_sign = "&".join(f"{k}={v}" for k, v in items)
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _parse_resource(data: Any) -> CdnResource:
    if not isinstance(data, dict):
        raise CdnError("Invalid CDN resource shape")
    public_id = data.get("public_id")
    secure_url = data.get("secure_url")
    if not isinstance(public_id, str) or not public_id:
        raise CdnError("CDN response missing public_id")
    if not isinstance(secure_url, str) or not secure_url:
        raise CdnError("CDN response missing secure_url")
    fmt = data.get("format")
    return CdnResource(
        public_id=public_id,
        secure_url=secure_url,
        width=_optional_int(data.get("width")),
        height=_optional_int(data.get("height")),
        format=fmt if isinstance(fmt, str) and fmt else None,
    )


class CdnClient:
    def __init__(
        self,
        config: CdnConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_s: float = 60.0,
    ) -> None:
        self.config = config
        self._transport = transport
        self._timeout_s = float(timeout_s)

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self._timeout_s, connect=10.0),
            **kwargs,
        )

    def _require_config(self) -> None:
        if not self.config.configured:
            raise CdnError("CDN credentials are not configured")

    async def upload_image(
        self,
        *,
        content: bytes,
        filename: str,
        content_type: str,
        folder: str,
        timestamp: int | None = None,
    ) -> CdnResource:
        self._require_config()
        folder = normalize_folder(folder)

        params: dict[str, Any] = {"folder": folder, "timestamp": int(timestamp if timestamp is not None else time.time())}
        data = {
            **{k: str(v) for k, v in params.items()},
            "api_key": self.config.api_key,
            "signature": sign_params(params, api_secret=self.config.api_secret),
        }
        files = {"file": (filename or "upload", content, content_type or "application/octet-stream")}

        async with self._client() as client:
            try:
                resp = await client.post(self.config.endpoint("image/upload"), data=data, files=files)
            except httpx.HTTPError as exc:
                raise CdnError(f"CDN upload transport error: {type(exc).__name__}") from exc

        if resp.status_code != 200:
            raise CdnError("CDN upload failed", status_code=resp.status_code)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise CdnError("CDN response is not JSON", status_code=resp.status_code) from exc

        resource = _parse_resource(payload)
        log.info("cdn_upload_ok folder=%s public_id=%s bytes=%s", folder, resource.public_id, len(content))
        return resource

    async def search_folder(self, folder: str, *, max_results: int = SEARCH_MAX_RESULTS) -> list[CdnResource]:
        self._require_config()
        folder = normalize_folder(folder)
        body = {"expression": f"folder:{folder}/*", "max_results": max(1, min(int(max_results), SEARCH_MAX_RESULTS))}

        async with self._client(auth=(self.config.api_key, self.config.api_secret)) as client:
            try:
                resp = await client.post(self.config.endpoint("resources/search"), json=body)
            except httpx.HTTPError as exc:
                raise CdnError(f"CDN search transport error: {type(exc).__name__}") from exc

        if resp.status_code != 200:
            raise CdnError("CDN search failed", status_code=resp.status_code)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise CdnError("CDN response is not JSON", status_code=resp.status_code) from exc

        resources = payload.get("resources") if isinstance(payload, dict) else None
        if not isinstance(resources, list):
            raise CdnError("Invalid CDN search response shape")
        return [_parse_resource(r) for r in resources]
