"""Configuration settings for freee-link."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Required configuration is missing or unusable."""


class Settings(BaseSettings):
    """Flat settings read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # freee API
    freee_api_url: str = Field(
        default="https://api.freee.co.jp", validation_alias="FREEE_API_URL"
    )
    freee_token_url: str = Field(
        default="https://accounts.secure.freee.co.jp/public_api/token",
        validation_alias="FREEE_TOKEN_URL",
    )
    freee_access_token: SecretStr | None = Field(
        default=None, validation_alias="FREEE_ACCESS_TOKEN"
    )
    freee_refresh_token: SecretStr | None = Field(
        default=None, validation_alias="FREEE_REFRESH_TOKEN"
    )
    freee_client_id: str | None = Field(default=None, validation_alias="FREEE_CLIENT_ID")
    freee_client_secret: SecretStr | None = Field(
        default=None, validation_alias="FREEE_CLIENT_SECRET"
    )
    freee_company_id: int | None = Field(default=None, validation_alias="FREEE_COMPANY_ID")
    freee_tokens_file: Path = Field(
        default=Path(".freee_tokens.json"), validation_alias="FREEE_TOKENS_FILE"
    )
    freee_page_size: int = Field(default=100, validation_alias="FREEE_PAGE_SIZE")
    http_timeout: float = Field(default=30.0, validation_alias="HTTP_TIMEOUT")

    # Google Sheets / Drive
    spreadsheet_id: str | None = Field(default=None, validation_alias="SPREADSHEET_ID")
    import_sheet_name: str = Field(default="Import", validation_alias="SHEET_NAME")
    google_service_account_file: Path = Field(
        default=Path("./service-account-key.json"),
        validation_alias="GOOGLE_SERVICE_ACCOUNT_KEY_FILE",
    )
    drive_root_folder_id: str | None = Field(
        default=None, validation_alias="DRIVE_ROOT_FOLDER_ID"
    )
    receipt_ledger_file: Path = Field(
        default=Path("processed_receipts.json"), validation_alias="RECEIPT_LEDGER_FILE"
    )
    receipt_upload_delay: float = Field(default=1.0, validation_alias="RECEIPT_UPLOAD_DELAY")
    receipt_max_size_mb: int = Field(default=10, validation_alias="RECEIPT_MAX_SIZE_MB")

    # Lark
    lark_api_url: str = Field(
        default="https://open.larksuite.com", validation_alias="LARK_API_URL"
    )
    lark_app_id: str | None = Field(default=None, validation_alias="LARK_APP_ID")
    lark_app_secret: SecretStr | None = Field(default=None, validation_alias="LARK_APP_SECRET")
    lark_base_config_file: Path = Field(
        default=Path(".lark_base_config.json"), validation_alias="LARK_BASE_CONFIG_FILE"
    )
    lark_write_delay: float = Field(default=0.5, validation_alias="LARK_WRITE_DELAY")
    lark_table_delay: float = Field(default=0.3, validation_alias="LARK_TABLE_DELAY")

    mappings_file: Path | None = Field(default=None, validation_alias="MAPPINGS_FILE")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    profile: str | None = Field(default=None, validation_alias="FREEE_PROFILE")

    def scoped_path(self, path: Path) -> Path:
        """Return ``path`` suffixed with the active profile, e.g. ``tokens.work.json``."""
        if not self.profile:
            return path
        return path.with_name(f"{path.stem}.{self.profile}{path.suffix}")

    @property
    def tokens_path(self) -> Path:
        return self.scoped_path(self.freee_tokens_file)

    @property
    def receipt_ledger_path(self) -> Path:
        return self.scoped_path(self.receipt_ledger_file)

    def require_freee(self) -> None:
        """Fail fast when the freee credentials needed for any API call are missing."""
        missing = []
        if self.freee_access_token is None and self.freee_refresh_token is None:
            missing.append("FREEE_ACCESS_TOKEN")
        if self.freee_company_id is None:
            missing.append("FREEE_COMPANY_ID")
        if missing:
            raise ConfigurationError(f"Missing configuration: {', '.join(missing)}")

    def require_spreadsheet(self, spreadsheet_id: str | None = None) -> str:
        resolved = spreadsheet_id or self.spreadsheet_id
        if not resolved:
            raise ConfigurationError(
                "Spreadsheet ID is required (pass it as an argument or set SPREADSHEET_ID)"
            )
        return resolved

    def require_drive_folder(self) -> str:
        if not self.drive_root_folder_id:
            raise ConfigurationError("Missing configuration: DRIVE_ROOT_FOLDER_ID")
        return self.drive_root_folder_id

    def require_lark(self) -> None:
        if not self.lark_app_id or self.lark_app_secret is None:
            raise ConfigurationError("Missing configuration: LARK_APP_ID, LARK_APP_SECRET")


def load_settings(profile: str | None = None) -> Settings:
    """Load settings for a profile.

    A profile reads ``.env.<profile>`` instead of ``.env`` and scopes the token
    file and receipt ledger so several companies can share one checkout.
    """
    if not profile:
        return Settings()
    settings = Settings(_env_file=f".env.{profile}")
    return settings.model_copy(update={"profile": profile})


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance for the default profile."""
    return load_settings()
