from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Paths
    cache_db_path: str = Field(default="sentinel_sync/data/sentinel.db", alias="CACHE_DB_PATH")

    # Persisted "current state" collection
    events_collection: str = Field(default="active_disasters", alias="EVENTS_COLLECTION")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # ──────────────────────────────────────────────────────────────
    # Sync run contract
    # ──────────────────────────────────────────────────────────────

    sync_scheduler_enabled: bool = Field(default=True, alias="SYNC_SCHEDULER_ENABLED")
    sync_interval_s: float = Field(default=600.0, alias="SYNC_INTERVAL_S")  # every 10 minutes
    # Hard ceiling for one whole run (fetch + normalize + reconcile)
    sync_timeout_s: float = Field(default=60.0, alias="SYNC_TIMEOUT_S")
    # Fetchers still pending after this are treated as failed for the run
    fetch_budget_s: float = Field(default=45.0, alias="FETCH_BUDGET_S")

    http_user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/91.0.4472.124 Safari/537.36",
        alias="HTTP_USER_AGENT",
    )

    # ──────────────────────────────────────────────────────────────
    # GDACS: global multi-hazard coordination feed (JSON/GeoJSON)
    # ──────────────────────────────────────────────────────────────

    gdacs_enabled: bool = Field(default=True, alias="GDACS_ENABLED")
    gdacs_url: str = Field(
        default="https://www.gdacs.org/gdacsapi/api/events/geteventlist/SEARCH",
        alias="GDACS_URL",
    )

    # ──────────────────────────────────────────────────────────────
    # USGS: global seismic (GeoJSON, M4.0+)
    # ──────────────────────────────────────────────────────────────

    usgs_enabled: bool = Field(default=True, alias="USGS_ENABLED")
    usgs_url: str = Field(
        default="https://earthquake.usgs.gov/fdsnws/event/1/query?format=geojson&minmagnitude=4.0&orderby=time",
        alias="USGS_URL",
    )

    # ──────────────────────────────────────────────────────────────
    # NASA EONET: open natural events, category tagged (JSON)
    # ──────────────────────────────────────────────────────────────

    nasa_enabled: bool = Field(default=True, alias="NASA_ENABLED")
    nasa_url: str = Field(
        default="https://eonet.gsfc.nasa.gov/api/v3/events?status=open&days=365",
        alias="NASA_URL",
    )

    # ──────────────────────────────────────────────────────────────
    # Copernicus EMS: activations RSS with georss:point
    # The upstream certificate is expired/misconfigured; relaxed TLS applies
    # to this source only.
    # ──────────────────────────────────────────────────────────────

    copernicus_enabled: bool = Field(default=True, alias="COPERNICUS_ENABLED")
    copernicus_url: str = Field(
        default="https://emergency.copernicus.eu/mapping/list-of-activations-rss",
        alias="COPERNICUS_URL",
    )
    copernicus_relaxed_tls: bool = Field(default=True, alias="COPERNICUS_RELAXED_TLS")

    # ──────────────────────────────────────────────────────────────
    # ReliefWeb: humanitarian disaster listing (diagnostic count only)
    # ──────────────────────────────────────────────────────────────

    reliefweb_enabled: bool = Field(default=True, alias="RELIEFWEB_ENABLED")
    reliefweb_url: str = Field(
        default=(
            "https://api.reliefweb.int/v1/disasters?appname=sentinel-map-v1"
            "&profile=list&preset=latest&limit=1000&status=ongoing"
        ),
        alias="RELIEFWEB_URL",
    )

    # ──────────────────────────────────────────────────────────────
    # EMSC: Euro-Mediterranean seismic (GeoJSON, M4.0+)
    # ──────────────────────────────────────────────────────────────

    emsc_enabled: bool = Field(default=True, alias="EMSC_ENABLED")
    emsc_url: str = Field(
        default="https://www.seismicportal.eu/fdsnws/event/1/query?format=json&limit=1000&minmagnitude=4.0&orderby=time",
        alias="EMSC_URL",
    )


settings = Settings()
