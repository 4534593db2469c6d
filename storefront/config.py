import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Events backend
    api_base_url: str = "http://127.0.0.1:5000"
    events_page_size: int = 12
    cors_origins: str = "http://localhost:5173,http://localhost:3000"
    # Browsing sessions kept by the API; the oldest is closed past this
    max_sessions: int = 100

    # Geocoding / imagery (third-party)
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    wikidata_entity_url: str = "https://www.wikidata.org/wiki/Special:EntityData"
    commons_file_url: str = "https://commons.wikimedia.org/wiki/Special:FilePath"
    placeholder_url: str = "https://placehold.co/800x600"
    geocoder_user_agent: str = "EventApp/1.0"

    # Minimum gap between geocoder calls (Nominatim usage policy)
    geocode_delay_seconds: float = 0.2
    http_timeout_seconds: float = 10.0

    log_level: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
