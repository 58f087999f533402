## app/core/config.py

from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the application
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"
    allowed_cors_urls: str = "*"
    log_level: str = "INFO"

    # Working storage
    data_dir: str = "data"
    ledger_file: Optional[str] = None
    token_file: Optional[str] = None
    inprocess_dir: Optional[str] = None
    log_file: Optional[str] = None

    # Adobe Sign integration
    adobe_client_id: str = ""
    adobe_client_secret: str = ""
    adobe_api_base: str = "https://api.eu1.adobesign.com"
    adobe_auth_base: str = "https://secure.eu1.adobesign.com"
    adobe_scopes: str = (
        "agreement_send:account,agreement_write:account,agreement_read:account,"
        "account_read:account,account_write:account,user_login:account"
    )
    adobe_max_document_bytes: int = 20 * 1024 * 1024
    public_base_url: str = "http://localhost:8000"

    # Content Server integration
    otcs_base_url: str = ""
    otcs_username: str = ""
    otcs_password: str = ""

    # Signed request proof for /start
    signature_secret: str = ""
    signature_max_age_seconds: int = 120

    # Basic auth for /auth and /logs
    log_user: str = ""
    log_pass: str = ""

    # Agreement tracking
    duplicate_window_minutes: int = 15
    artifact_retry_attempts: int = 50
    artifact_retry_delay_seconds: float = 3.0

    # Workflow advancement
    start_task_id: str = "2"
    completion_task_id: str = "3"
    signed_disposition: str = "Signed"
    rejected_disposition: str = "Rejected"

    keepalive_interval_seconds: int = 600

    @property
    def is_production(self) -> bool:
        """
        Whether the service runs in production
        """
        return self.environment.lower() == "production"

    @property
    def ledger_path(self) -> Path:
        """
        Location of the agreement ledger JSON file
        """
        return Path(self.ledger_file or Path(self.data_dir) / "agreements.json")

    @property
    def token_path(self) -> Path:
        """
        Location of the persisted Adobe Sign tokens
        """
        return Path(self.token_file or Path(self.data_dir) / "tokens.json")

    @property
    def inprocess_path(self) -> Path:
        """
        Working directory for documents in flight
        """
        return Path(self.inprocess_dir or Path(self.data_dir) / "inprocess")

    @property
    def log_path(self) -> Path:
        """
        Audit log file, also served by /logs
        """
        return Path(self.log_file or Path(self.data_dir) / "audit.log")

    @property
    def adobe_redirect_uri(self) -> str:
        """
        OAuth redirect URI registered with Adobe Sign
        """
        return f"{self.public_base_url.rstrip('/')}/admin/callback"

    @property
    def adobe_scope_list(self) -> List[str]:
        """
        OAuth scopes requested during login
        """
        return [s.strip() for s in self.adobe_scopes.split(",") if s.strip()]


settings = Settings()
