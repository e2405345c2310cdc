from pydantic_settings import BaseSettings, SettingsConfigDict

from runebox.clients.catalog import CatalogClientOptions


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "RuneBox"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///data/runebox.db"

    # Hosted catalog (PostgREST-style table API). The key only needs read access.
    catalog_url: str = "http://localhost:54321"
    catalog_api_key: str = ""
    catalog_page_size: int = 1000
    catalog_timeout: float = 30.0

    # Requested background refresh period; the scheduler never goes below
    # its platform minimum of 15 minutes.
    sync_interval_seconds: int = 900
    background_sync_enabled: bool = True

    def catalog_options(self) -> CatalogClientOptions:
        """Build the typed options the catalog client is constructed from."""
        return CatalogClientOptions(
            base_url=self.catalog_url,
            api_key=self.catalog_api_key,
            page_size=self.catalog_page_size,
            timeout=self.catalog_timeout,
        )


settings = Settings()
