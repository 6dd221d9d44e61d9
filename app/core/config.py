from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "VPS Alert"
    API_V1_STR: str = "/api"
    ENVIRONMENT: str = "development"

    # Shared secret for cron triggers and admin actions
    CRON_SECRET: str = ""

    # Public URL used for links in notification emails
    APP_URL: str = "http://localhost:3000"

    DATABASE_URL: str = "sqlite:///./vps_alert.db"

    # OVH availability API
    OVH_BASE_URL: str = "https://ca.api.ovh.com/1.0/vps/order/rule/datacenter"
    OVH_SUBSIDIARY: str = "ASIA"
    OVH_PLAN_CODE_TEMPLATE: str = "vps-2025-model{model}"
    OVH_API_TIMEOUT: float = 5.0  # seconds

    # Circuit breaker guarding the OVH API
    OVH_CIRCUIT_BREAKER_THRESHOLD: int = 5
    OVH_CIRCUIT_BREAKER_COOLDOWN: float = 60.0  # seconds

    # Email dispatcher
    EMAIL_BATCH_SIZE: int = 50
    EMAIL_MAX_BATCH_SIZE: int = 100
    EMAIL_MAX_PARALLEL: int = 10
    EMAIL_BATCH_DELAY_MS: int = 100
    EMAIL_MAX_PROCESSING_SECONDS: float = 300.0
    EMAIL_SEND_TIMEOUT: float = 45.0
    EMAIL_MAX_ATTEMPTS: int = 3
    EMAIL_RATE_PER_SECOND: int = 10
    EMAIL_RATE_PER_MINUTE: int = 100
    EMAIL_RATE_PER_HOUR: int = 1500

    # Resend Email
    RESEND_API_KEY: str = ""
    FROM_EMAIL: str = "VPS Alert <noreply@vpsalert.online>"

    # Server-sent events
    MAX_SSE_CONNECTIONS: int = 1000
    SSE_QUEUE_SIZE: int = 100
    SSE_PING_INTERVAL: float = 15.0  # seconds

    SENTRY_DSN: str = ""

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
