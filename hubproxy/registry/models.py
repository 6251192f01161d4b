import os
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from hubproxy.cache.models import TTLStrategy


class TokenKind(str, Enum):
    """Which upstream API a token is for"""

    REGISTRY = "registry"  # distribution API, OAuth2 bearer scoped per repository
    HUB = "hub"  # metadata API, JWT session token


class TokenResult(BaseModel):
    """Outcome of a credential exchange"""

    token: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.token is not None


class ImageRef(BaseModel):
    """namespace/repository:tag"""

    namespace: str = Field(..., min_length=1)
    repository: str = Field(..., min_length=1)
    tag: str = Field("latest", min_length=1)

    @property
    def repo(self) -> str:
        return f"{self.namespace}/{self.repository}"

    @property
    def scope(self) -> str:
        return f"repository:{self.repo}:pull"

    def __str__(self) -> str:
        return f"{self.repo}:{self.tag}"


class LayerInfo(BaseModel):
    """One layer of an image manifest"""

    digest: str = ""
    size: int = 0
    media_type: Optional[str] = None


class ImageLayers(BaseModel):
    """Layers of a single-platform image manifest"""

    layers: List[LayerInfo]
    total_size: int
    platform: Optional[str] = None


class BaseImageUpdate(BaseModel):
    """Detected base image and whether the image was built on its current version"""

    base_image: Optional[str] = None
    is_up_to_date: Optional[bool] = None
    latest_base_tag: Optional[str] = None


class DeleteTagResult(BaseModel):
    success: bool
    message: str


class Page(BaseModel):
    """One page of a paginated Docker Hub listing"""

    count: int = 0
    page: int = 1
    has_next: bool = False
    results: List[Dict[str, Any]] = Field(default_factory=list)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class HubConfig(BaseModel):
    """Docker Hub client configuration"""

    hub_url: str = Field(default="https://hub.docker.com/v2")
    registry_url: str = Field(default="https://registry-1.docker.io/v2")
    auth_url: str = Field(default="https://auth.docker.io/token")
    auth_service: str = Field(default="registry.docker.io")
    raw_content_url: str = Field(default="https://raw.githubusercontent.com")

    username: str = Field(default="")
    credential: Optional[SecretStr] = Field(default=None)

    timeout: float = Field(default=10.0, gt=0)

    cache_max_size: int = Field(default=2000, gt=0)
    cache_default_ttl: float = Field(default=1800, gt=0)
    cache_cleanup_interval: float = Field(default=300, gt=0)
    ttl_overrides: Dict[TTLStrategy, float] = Field(default_factory=dict)

    # Docker Hub answers 404 for private repositories it hides from anonymous callers
    escalate_on_not_found: bool = Field(default=True)

    max_requests_per_hour: int = Field(default=180, gt=0)
    max_concurrent_requests: int = Field(default=5, gt=0)

    @field_validator("hub_url", "registry_url", "auth_url", "raw_content_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return str(v).rstrip("/")

    @field_validator("credential")
    @classmethod
    def empty_credential_is_none(cls, v):
        if v is not None and not v.get_secret_value():
            return None
        return v

    @property
    def has_credential(self) -> bool:
        return self.credential is not None

    @classmethod
    def from_env(cls) -> "HubConfig":
        """Build configuration from DOCKERHUB_* and HUBPROXY_* variables."""
        values: Dict[str, Any] = {
            "username": os.getenv("DOCKERHUB_USERNAME", ""),
            "credential": os.getenv("DOCKERHUB_TOKEN") or None,
            "escalate_on_not_found": _env_bool("HUBPROXY_ESCALATE_ON_NOT_FOUND", True),
        }
        optional = {
            "timeout": "HUBPROXY_TIMEOUT",
            "cache_max_size": "HUBPROXY_CACHE_MAX_SIZE",
            "cache_default_ttl": "HUBPROXY_CACHE_TTL",
            "cache_cleanup_interval": "HUBPROXY_CACHE_CLEANUP_INTERVAL",
            "max_requests_per_hour": "HUBPROXY_MAX_REQUESTS_PER_HOUR",
        }
        for field_name, env_name in optional.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value
        return cls.model_validate(values)
