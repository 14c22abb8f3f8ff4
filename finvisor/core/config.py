from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Finvisor API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Receipt and VAT recovery management for accounting firms"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "finvisor"

    # Queries
    QUERY_TIMEOUT_SECONDS: float = 10.0
    RECEIPT_LIST_LIMIT: int = 100

    # Change feed
    FEED_RECONNECT_INITIAL_SECONDS: float = 1.0
    FEED_RECONNECT_MAX_SECONDS: float = 30.0

    # Automation webhooks
    WEBHOOK_URL: str = ""
    UPLOAD_WEBHOOK_URL: str = ""
    WEBHOOK_TIMEOUT_SECONDS: float = 30.0

    # Filter preferences
    FILTERS_STORAGE_PATH: str = ".finvisor/preferences.json"
    FILTERS_STORAGE_KEY: str = "global-filters-storage"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:8000"]

    # JWT (tokens are issued by the auth platform)
    JWT_SECRET: str = "change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_PRICE_PLANS: Dict[str, str] = {
        "price_1SPRFgD3myr3drrgxZBsTlZl": "essentiel:monthly",
        "price_1SPKtQD3myr3drrgxODHVnrh": "essentiel:yearly",
        "price_1SHlZoD3myr3drrganWIUw9q": "avance:monthly",
        "price_1SPL6OD3myr3drrgWIAMUkJi": "avance:yearly",
    }

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
