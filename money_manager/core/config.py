from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Money Manager API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Personal and shared finance ledger: wallets, loans, splits and debt settlement"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB (transactions need a replica set)
    MONGODB_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGODB_DB: str = "money_manager"

    # Ledger
    TRANSACTION_TIMEOUT_SECONDS: float = 1.0
    ALLOW_NEGATIVE_BALANCE: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
