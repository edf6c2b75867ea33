from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "canteen-identity-secret"
ALLOWED_APP_MODES = {"development", "production"}
MIN_SECRET_LENGTH = 32

DEFAULT_MENU_PRICES: dict[str, float] = {
    "Plain Maggi": 50,
    "Butter Atta Maggi": 60,
    "Cheese Atta Maggi": 70,
    "Cheese Maggi": 65,
    "Veg Butter Maggi": 55,
    "Veg Cheese Maggi": 65,
    "Aloo Sandwich": 40,
    "Aloo Cheese Sandwich": 50,
    "Veg Cheese Sandwich": 55,
    "Aloo Bhujia": 30,
    "Bhel Puri": 45,
    "Fatafat Bhel": 40,
    "Lite Mixture": 35,
    "Popcorn": 25,
    "Salted Peanuts": 20,
    "Amul Chaas": 30,
    "Amul Lassi": 40,
    "Coca Cola": 35,
    "Ginger Tea": 20,
    "Besan Chila": 45,
    "Masala Oats": 50,
    "MTR Poha": 40,
    "MTR Upma": 40,
    "Bourbon Biscuits": 15,
    "Good Day Biscuit": 10,
    "Parle G Biscuit": 8,
    "Mix Salad": 35,
    "Pasta": 80,
}


class Settings(BaseSettings):
    app_name: str = "Office Canteen Orders"

    database_url: str = Field(
        default="sqlite+pysqlite:///./test.db",
        validation_alias="CANTEEN_DATABASE_URL",
    )
    app_mode: str = Field(default="development", validation_alias="CANTEEN_APP_MODE")
    testing: bool = Field(default=False, validation_alias="CANTEEN_TESTING")
    auto_create_schema: bool = True
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    jwt_secret: str = DEFAULT_JWT_SECRET
    staff_emails: str = Field(default="", validation_alias="CANTEEN_STAFF_EMAILS")
    admin_emails: str = Field(default="", validation_alias="CANTEEN_ADMIN_EMAILS")

    board_settle_delay_s: float = Field(default=1.0, ge=0)
    delete_verify_delay_s: float = Field(default=3.0, ge=0)
    alert_history_size: int = Field(default=200, ge=1)
    custom_order_id_prefix: str = "ORD"
    menu_prices: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_MENU_PRICES),
        validation_alias="CANTEEN_MENU_PRICES",
    )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"CANTEEN_APP_MODE must be one of: {allowed}")
        return mode


settings = Settings()


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def menu_price(item_name: str) -> float | None:
    return settings.menu_prices.get(item_name.strip())


def _email_set(raw: str) -> set[str]:
    return {value.strip().lower() for value in raw.split(",") if value.strip()}


def staff_email_set() -> set[str]:
    return _email_set(settings.staff_emails) | admin_email_set()


def admin_email_set() -> set[str]:
    return _email_set(settings.admin_emails)


def ensure_secure_runtime_settings() -> None:
    """Fail fast when a non-test runtime uses insecure defaults."""
    if not settings.testing and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set to a non-default value when CANTEEN_TESTING is false")
    if not settings.testing and len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters when CANTEEN_TESTING is false"
        )
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError("CANTEEN_DATABASE_URL must use postgres when CANTEEN_APP_MODE=production")
    if is_production_mode() and settings.auto_create_schema:
        raise RuntimeError("AUTO_CREATE_SCHEMA must be disabled in CANTEEN_APP_MODE=production")


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
