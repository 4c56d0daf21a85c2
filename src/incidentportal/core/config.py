"""Configuration management using Pydantic settings."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Read endpoints for comment threads, tried in order. Placeholders: {collection},
# {parent_id}, {id_field}, and {param}, which expands once per query spelling
# the parent kind accepts.
DEFAULT_COMMENT_ENDPOINTS: tuple[str, ...] = (
    "/api/{collection}/{parent_id}/comentarios",
    "/api/comentarios?{param}={parent_id}",
    "/api/comentarios",
)


@dataclass(frozen=True)
class Region:
    """Rectangular bounding region where coordinates are considered valid."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float | None, lng: float | None) -> bool:
        """Check whether a coordinate pair lies inside the region (edges included)."""
        if lat is None or lng is None:
            return False
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote service
    base_url: str = Field(default="http://localhost:8080", description="Backend base URL")
    auth_token: str = Field(default="", description="Bearer token for the backend")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    update_method: Literal["PUT", "PATCH"] = Field(
        default="PUT", description="HTTP method for partial updates"
    )

    # Valid region (El Salvador by default)
    region_min_lat: float = 12.5
    region_max_lat: float = 15.0
    region_min_lng: float = -91.0
    region_max_lng: float = -87.0

    # Map behaviour
    default_center: tuple[float, float] = (13.9946, -89.5597)
    default_zoom: int = 6
    single_marker_zoom: int = 13
    focus_zoom: int = 16
    fit_padding: int = 50
    heat_midpoint: float = Field(default=0.5, description="Weight used when every weight is 0")
    heat_max_zoom: int = 11

    # UI-facing core behaviour
    notification_ttl: float = Field(default=3.0, description="Seconds a notification stays up")
    page_size: int = 10
    alert_page_size: int = Field(default=3, description="Alerts listed per page")

    comment_endpoints: tuple[str, ...] = DEFAULT_COMMENT_ENDPOINTS

    @property
    def region(self) -> Region:
        """Valid bounding region built from the region_* fields."""
        return Region(
            min_lat=self.region_min_lat,
            max_lat=self.region_max_lat,
            min_lng=self.region_min_lng,
            max_lng=self.region_max_lng,
        )

    def page_size_for(self, kind: str) -> int:
        """Default page size for an incident kind (``alerta`` pages are shorter)."""
        return self.alert_page_size if kind == "alerta" else self.page_size

    @property
    def has_auth_token(self) -> bool:
        """Check if a backend token is configured."""
        return bool(self.auth_token)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
