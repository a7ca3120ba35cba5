from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings class to retrieve environment variables.
    """

    DATABASE_URL: str
    DOMAIN: str = "localhost"     # localhost or production domain
    LOG_LEVEL: str = "INFO"
    CURRENCY: str = "VND"

    MAIL_USERNAME: str
    MAIL_PASSWORD: str
    MAIL_FROM: str
    MAIL_PORT: int
    MAIL_SERVER: str
    MAIL_FROM_NAME: str
    MAIL_STARTTLS: bool
    MAIL_SSL_TLS: bool
    USE_CREDENTIALS: bool
    VALIDATE_CERTS: bool
    MAIL_SUPPRESS_SEND: bool = False

    # Flash sale scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"
    FLASH_SALE_SWEEP_INTERVAL_SECONDS: int = 60
    FLASH_SALE_SWEEP_WINDOW_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file='.env',
        extra='ignore',
    )


Config = Settings()
