from dotenv import load_dotenv
load_dotenv()

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    """Application configuration for the expense tracker bot.

    Values are read from the environment and from the `.env` file. Besides the
    bot and database wiring, the settings carry the limits the conversation
    flows validate user input against.

    Attributes:
        TELEGRAM_BOT_TOKEN (str): Bot token used by the polling loop.
        DB_URL (str): Async SQLAlchemy URL (SQLite via aiosqlite by default).
        ENABLED_FLOWS (str): Comma separated flow names; empty means all flows.
        ALLOWED_USERNAMES (str): Comma separated usernames; empty allows everyone.
    """
    TELEGRAM_BOT_TOKEN: str = Field(..., alias="TELEGRAM_BOT_TOKEN")
    DB_URL: str = Field(default="sqlite+aiosqlite:///data/expenses.db", alias="DB_URL")
    TELEGRAM_BOT_ALERT: str | None = Field(default=None, alias="TELEGRAM_BOT_ALERT")
    TELEGRAM_ALERT_CHAT_ID: str | None = Field(default=None, alias="TELEGRAM_ALERT_CHAT_ID")
    LOG_LEVEL: str = Field(default="INFO", alias="LOG_LEVEL")

    ALLOWED_USERNAMES: str = Field(default="", alias="ALLOWED_USERNAMES")
    ENABLED_FLOWS: str = Field(default="", alias="ENABLED_FLOWS")

    IMPORT_MIN_YEAR: int = Field(default=2020, alias="IMPORT_MIN_YEAR")
    IMPORT_MAX_YEAR: int = Field(default=2100, alias="IMPORT_MAX_YEAR")
    IMPORT_MAX_FILE_SIZE_BYTES: int = Field(default=10 * 1024 * 1024, alias="IMPORT_MAX_FILE_SIZE_BYTES")
    IMPORT_ALLOWED_EXTENSIONS: str = Field(default=".xlsx", alias="IMPORT_ALLOWED_EXTENSIONS")

    DATE_MIN_YEAR: int = Field(default=2020, alias="DATE_MIN_YEAR")
    DATE_MAX_YEAR: int = Field(default=2100, alias="DATE_MAX_YEAR")
    DATE_PICKER_URL: str | None = Field(default=None, alias="DATE_PICKER_URL")

    MAX_CATEGORY_NAME_LENGTH: int = Field(default=50, alias="MAX_CATEGORY_NAME_LENGTH")
    MAX_SUBCATEGORY_NAME_LENGTH: int = Field(default=50, alias="MAX_SUBCATEGORY_NAME_LENGTH")
    MAX_TAG_NAME_LENGTH: int = Field(default=30, alias="MAX_TAG_NAME_LENGTH")
    CASE_INSENSITIVE_NAMES: bool = Field(default=True, alias="CASE_INSENSITIVE_NAMES")

    CURRENCY_SYMBOL: str = Field(default="€", alias="CURRENCY_SYMBOL")
    REPORT_CRON: str = Field(default="0 9 * * MON", alias="REPORT_CRON")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def allowed_usernames(self) -> set[str]:
        return {u.strip().lstrip("@").lower() for u in self.ALLOWED_USERNAMES.split(",") if u.strip()}

    @property
    def enabled_flows(self) -> list[str]:
        return [f.strip().lower() for f in self.ENABLED_FLOWS.split(",") if f.strip()]

    @property
    def import_allowed_extensions(self) -> tuple[str, ...]:
        exts = []
        for ext in self.IMPORT_ALLOWED_EXTENSIONS.split(","):
            ext = ext.strip().lower()
            if ext:
                exts.append(ext if ext.startswith(".") else f".{ext}")
        return tuple(exts)

    @property
    def alert_chat_ids(self) -> list[int]:
        ids: list[int] = []
        for part in (self.TELEGRAM_ALERT_CHAT_ID or "").split(","):
            part = part.strip()
            if not part:
                continue
            try:
                ids.append(int(part))
            except ValueError:
                continue
        return ids

settings = Settings()
