from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="LOCATIONMART_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Geocoding providers
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    nominatim_email: Optional[str] = None
    nominatim_limit: int = Field(default=5, ge=1, le=50)
    census_url: str = "https://geocoding.geo.census.gov/geocoder"
    census_benchmark: str = "Public_AR_Current"
    census_vintage: str = "Current_Current"
    nyc_geoclient_url: str = "https://api.nyc.gov/geoclient/v2"
    nyc_geoclient_key: Optional[str] = None

    # Enrichment providers
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    open_meteo_url: str = "https://api.open-meteo.com/v1"

    # HTTP
    user_agent: str = "locationmart/0.1"
    geocoder_timeout: float = Field(default=4.0, gt=0)
    enrichment_timeout: float = Field(default=20.0, gt=0)

    # Orchestration
    max_workers: int = Field(default=8, ge=1)
    dedupe_tolerance: float = Field(default=1e-4, ge=0)
    default_max_radius: float = Field(default=5.0, gt=0)
    catalog_path: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
