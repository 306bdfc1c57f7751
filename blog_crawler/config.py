"""Configuration utilities shared by all crawl pipelines."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional
from urllib.parse import quote

if TYPE_CHECKING:
    from .targets import Target, TargetIdentity, TargetVariant

DEFAULT_DOWNLOAD_ROOT = Path("downloads")
DEFAULT_INDEX_DIR = DEFAULT_DOWNLOAD_ROOT / "index"

DEFAULT_USER_AGENT = "blog-crawler/1.0"


class ConfigurationError(ValueError):
    """Raised when a target or run configuration cannot be honoured."""


@dataclass(slots=True)
class TimeoutConfig:
    request_timeout: float = 10.0
    download_timeout: float = 60.0


@dataclass(slots=True)
class FailurePolicy:
    """Thresholds at which per-item transport failures abort a pipeline.

    ``consecutive_failure_threshold`` of ``None`` disables escalation for
    ordinary transport errors; authentication failures always count against
    ``auth_failure_threshold``.
    """

    auth_failure_threshold: int = 1
    consecutive_failure_threshold: int | None = None


@dataclass(slots=True)
class ProxyConfig:
    """Configuration for outbound proxy usage."""

    scheme: str = "http"
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def address(self) -> Optional[str]:
        if self.host is None or self.port is None:
            return None
        return f"{self.host}:{self.port}"

    def httpx_proxy(self) -> Optional[str]:
        address = self.address
        if not address:
            return None
        credentials = ""
        if self.username:
            user = quote(self.username, safe="")
            if self.password:
                pwd = quote(self.password, safe="")
                credentials = f"{user}:{pwd}@"
            else:
                credentials = f"{user}@"
        return f"{self.scheme}://{credentials}{address}"

    @classmethod
    def from_endpoint(cls, endpoint: str, *, scheme: str = "http") -> "ProxyConfig":
        cleaned = endpoint.strip()
        if not cleaned:
            raise ValueError("Proxy endpoint must not be empty")

        parts = cleaned.split(":")
        if len(parts) not in (2, 4):
            raise ValueError("Proxy endpoint must be in 'host:port[:user:password]' format")

        host = parts[0].strip()
        if not host:
            raise ValueError("Proxy host must not be empty")

        try:
            port = int(parts[1].strip())
        except ValueError as exc:
            raise ValueError("Proxy port must be an integer") from exc

        username: Optional[str] = None
        password: Optional[str] = None
        if len(parts) == 4:
            username = parts[2].strip() or None
            password = parts[3].strip() or None

        return cls(scheme=scheme, host=host, port=port, username=username, password=password)


@dataclass(slots=True)
class CrawlerConfig:
    download_root: Path = DEFAULT_DOWNLOAD_ROOT
    index_dir: Path = DEFAULT_INDEX_DIR
    load_all_indices: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    api_key: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)
    content_workers: int = 2
    page_size: int = 50
    max_pages: int | None = None
    poll_interval: float = 0.2
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    proxy: Optional[ProxyConfig] = None
    failure_policy: FailurePolicy = field(default_factory=FailurePolicy)

    def ensure_directories(self) -> None:
        self.download_root.mkdir(parents=True, exist_ok=True)
        self.index_dir.mkdir(parents=True, exist_ok=True)

    def target_directory(self, target: "Target") -> Path:
        return self.download_root / target.identity.name

    def index_path(self, identity: "TargetIdentity", variant: "TargetVariant") -> Path:
        return self.index_dir / f"{identity.name}.{variant.value}.sqlite"


def load_cookies(path: Path) -> Dict[str, str]:
    """Read a ``{name: value}`` JSON cookie file exported from a browser session."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read cookie file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Cookie file {path} must contain a JSON object")
    return {str(name): str(value) for name, value in payload.items()}
