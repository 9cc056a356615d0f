from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database: DATABASE_URL wins, otherwise assembled from the DB_* parts
    database_url: str = ""
    db_driver: str = "postgresql+asyncpg"
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "qa"
    db_password: str = "qa_dev_password"
    db_name: str = "qa_automation"
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # Redis (backlog queue, cancel flags, rate limiting)
    redis_url: str = "redis://localhost:6379/0"

    # App
    environment: str = Field("development", validation_alias=AliasChoices("environment", "app_env"))
    port: int = 8080
    log_level: str = "INFO"
    log_format: str = "text"  # text | json

    # Security
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"
    rate_limit_per_minute: int = 120

    # BrowserStack
    browserstack_username: str = ""
    browserstack_access_key: str = ""
    browserstack_hub_url: str = "https://hub.browserstack.com/wd/hub"
    browserstack_api_url: str = "https://api.browserstack.com"
    browserstack_project_name: str = "QA Automation System"

    # Fixed test account used by every run
    test_email: str = Field("", validation_alias=AliasChoices("test_email", "senti_email"))
    test_password: str = Field("", validation_alias=AliasChoices("test_password", "senti_password"))

    # Per-site chat room identifiers
    senti_chat_rest_id: str = ""
    shorts_senti_chat_rest_id: str = ""
    hothinge_chat_rest_id: str = ""
    viblys_chat_rest_id: str = ""

    # Payment test fixture (age verification form)
    cc_first_name: str = ""
    cc_last_name: str = ""
    cc_number: str = ""
    cc_month: str = ""
    cc_year: str = ""
    cc_cvv: str = ""

    # Screenshots are written here and served under /screenshots
    screenshots_dir: str = "screenshots"

    # Worker
    worker_concurrency: int = 4
    job_timeout_seconds: int = 600
    orphan_threshold_minutes: int = 60
    record_video: bool = False

    # Browser waits
    element_timeout_seconds: float = 10.0
    navigation_timeout_seconds: float = 15.0
    poll_interval_seconds: float = 0.5
    poll_jitter: float = 0.25

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def _assemble_database_url(self):
        if not self.database_url:
            self.database_url = (
                f"{self.db_driver}://{self.db_user}:{self.db_password}"
                f"@{self.db_host}:{self.db_port}/{self.db_name}"
            )
        return self

    @model_validator(mode="after")
    def _validate_production(self):
        if self.environment == "production":
            if not (self.browserstack_username and self.browserstack_access_key):
                raise ValueError(
                    "Production requires BROWSERSTACK_USERNAME and BROWSERSTACK_ACCESS_KEY"
                )
            if not (self.test_email and self.test_password):
                raise ValueError(
                    "Production requires SENTI_EMAIL and SENTI_PASSWORD for the test account"
                )
            if "qa_dev_password" in self.database_url:
                raise ValueError(
                    "Production must not use the default dev database password"
                )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def chat_room_ids(self) -> dict[str, str]:
        return {
            "senti.live": self.senti_chat_rest_id,
            "shorts.senti.live": self.shorts_senti_chat_rest_id,
            "hothinge.com": self.hothinge_chat_rest_id,
            "viblys.com": self.viblys_chat_rest_id,
        }

    @property
    def payment_fixture(self) -> list[str]:
        """Age-verification form values, in on-screen input order."""
        return [
            self.cc_first_name,
            self.cc_last_name,
            self.cc_number,
            self.cc_month,
            self.cc_year,
            self.cc_cvv,
        ]


settings = Settings()
