from typing import Any, Dict, Optional
import json
import os

import httpx

from endpoints import BASE_URL
from .errors import NetworkError
from .utils import append_log_line, get_logger, redact_payload, redacted_headers, truncate_text


class NotesClient:
    def __init__(
        self,
        base_url: str = BASE_URL,
        client_id: str = "",
        client_secret: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not base_url or not base_url.strip():
            raise ValueError("api base url is required")
        self.base_url = base_url.strip().rstrip('/')
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.logger = get_logger('codestash.http')
        self._client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)
        self.http_log_path = os.getenv("CODESTASH_HTTP_LOG") or None

    def _trace(self, line: str) -> None:
        if self.http_log_path:
            append_log_line(self.http_log_path, line)

    def request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        url = path if path.startswith('http') else f"{self.base_url}{path}"
        headers: Dict[str, str] = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        headers.update(kwargs.get('headers', {}) or {})
        kwargs['headers'] = headers
        redacted = redacted_headers(headers)
        payload = redact_payload(kwargs.get("json")) if "json" in kwargs else None
        self.logger.debug('HTTP %s %s headers=%s', method, url, redacted)
        if payload is not None:
            self._trace(f"{method} {url} headers={redacted} payload={payload}")
        else:
            self._trace(f"{method} {url} headers={redacted}")

        try:
            resp = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {url} timed out after {self.timeout:g}s") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        self.logger.debug('HTTP %s %s status=%s', method, url, resp.status_code)
        if self.http_log_path:
            try:
                response_body: Any = redact_payload(resp.json())
            except ValueError:
                response_body = truncate_text(resp.text or "")
            self._trace(
                f"{method} {url} status={resp.status_code} response={json.dumps(response_body, ensure_ascii=True)}"
            )
        return resp

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "NotesClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
