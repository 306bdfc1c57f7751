"""HTTP session shared by every stage of one crawl run."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Callable, Mapping

import httpx

from .config import CrawlerConfig

LOGGER = logging.getLogger(__name__)

_AUTH_STATUS_CODES = {
    httpx.codes.UNAUTHORIZED,
    httpx.codes.FORBIDDEN,
}


class TransportError(RuntimeError):
    """Raised when an HTTP request fails irrecoverably."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class AuthenticationError(TransportError):
    """Raised when the remote rejects the session's credentials."""


class DownloadCancelledError(TransportError):
    """Raised when a download is abandoned because the run was cancelled."""


class HttpSession:
    """httpx client plus cookie context for one pipeline run."""

    def __init__(
        self,
        config: CrawlerConfig,
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client = client or self._build_client()
        self._owns_client = client is None

    def _build_client(self) -> httpx.Client:
        kwargs: dict[str, object] = {
            "timeout": self._config.timeout.request_timeout,
            "headers": {"User-Agent": self._config.user_agent},
            "cookies": httpx.Cookies(self._config.cookies),
            "follow_redirects": True,
        }
        proxy_url: str | None = None
        if self._config.proxy:
            proxy_url = self._config.proxy.httpx_proxy()
        if proxy_url:
            kwargs["proxy"] = proxy_url
        if self._transport:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def issue_request(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
        params: Mapping[str, object] | None = None,
    ) -> httpx.Response:
        if cookies:
            self._client.cookies.update(cookies)
        try:
            response = self._client.get(url, headers=headers, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc), url=url) from exc

        if response.status_code in _AUTH_STATUS_CODES:
            raise AuthenticationError(
                f"Authentication rejected with status {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )
        if response.status_code != httpx.codes.OK:
            raise TransportError(
                f"Unexpected status {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )
        return response

    def fetch_json(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, object] | None = None,
    ) -> dict:
        response = self.issue_request(url, headers=headers, params=params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(f"Response from {url} is not valid JSON", url=url) from exc
        if not isinstance(payload, dict):
            raise TransportError(f"Response from {url} is not a JSON object", url=url)
        return payload

    def fetch_text(self, url: str, *, headers: Mapping[str, str] | None = None) -> str:
        return self.issue_request(url, headers=headers).text

    def stream_to_file(
        self,
        url: str,
        target: Path,
        *,
        should_abort: Callable[[], bool] | None = None,
    ) -> tuple[str, int]:
        """Download ``url`` into ``target`` and return ``(sha256, bytes_written)``.

        ``should_abort`` is polled before each chunk; when it returns true the
        partial file is discarded and :class:`DownloadCancelledError` raised.
        """

        temporary_target = target.with_name(target.name + ".part")
        hasher = hashlib.sha256()
        bytes_written = 0
        try:
            with self._client.stream("GET", url, timeout=self._config.timeout.download_timeout) as response:
                if response.status_code in _AUTH_STATUS_CODES:
                    raise AuthenticationError(
                        f"Authentication rejected with status {response.status_code} for {url}",
                        url=url,
                        status_code=response.status_code,
                    )
                if response.status_code != httpx.codes.OK:
                    raise TransportError(
                        f"Unexpected status {response.status_code} for {url}",
                        url=url,
                        status_code=response.status_code,
                    )
                with temporary_target.open("wb") as handle:
                    for chunk in response.iter_bytes():
                        if should_abort is not None and should_abort():
                            raise DownloadCancelledError(f"Download of {url} cancelled", url=url)
                        if not chunk:
                            continue
                        handle.write(chunk)
                        hasher.update(chunk)
                        bytes_written += len(chunk)
            if bytes_written == 0:
                raise TransportError(f"Empty response body for {url}", url=url)
        except httpx.HTTPError as exc:
            temporary_target.unlink(missing_ok=True)
            raise TransportError(str(exc), url=url) from exc
        except BaseException:
            temporary_target.unlink(missing_ok=True)
            raise

        temporary_target.replace(target)
        LOGGER.debug("Stored %s (%d bytes) at %s", url, bytes_written, target)
        return hasher.hexdigest(), bytes_written

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpSession":  # pragma: no cover - convenience wrapper
        return self

    def __exit__(self, *_exc_info) -> None:  # pragma: no cover - convenience wrapper
        self.close()
