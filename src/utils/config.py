from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SHOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Festamas Back Office"
    debug: bool = False

    # Database
    db_path: str = "data/shop.sqlite"

    # Public URLs
    site_url: str = "https://www.festamas.com"
    panel_url: str = "https://www.festamas.com/admin/orders"

    # Catalog / reporting
    low_stock_threshold: int = 5
    catalog_revalidate_seconds: int = 60
    catalog_cache_size: int = 256
    page_size: int = 12

    # Mail
    admin_email: str = "ventas@festamas.com"
    mail_sender: str = "no-reply@festamas.com"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""

    # Console bootstrap admin, created on first start when the password is set
    bootstrap_admin_name: str = "Administrador"
    bootstrap_admin_email: str = "admin@festamas.com"
    bootstrap_admin_password: str = ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
