"""Configuration management for the claimwatch screen watcher."""
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env relative to the project root (where this package lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Event gate
    debounce_ms: int = Field(default=500, alias="DEBOUNCE_MS", ge=0)
    target_app: str = Field(default="com.vehotechnologies.Driver", alias="TARGET_APP")
    restrict_to_target_app: bool = Field(default=False, alias="RESTRICT_TO_TARGET_APP")

    # Search controller
    poll_interval: float = Field(default=1.0, alias="POLL_INTERVAL", gt=0)

    # Tree matcher
    currency_marker: str = Field(default="$", alias="CURRENCY_MARKER", min_length=1)
    zone_marker: str = Field(default="Delivery Area", alias="ZONE_MARKER", min_length=1)
    price_container_ids: List[str] = Field(
        default=["price-container", "offer-price", "price-display"],
        alias="PRICE_CONTAINER_IDS",
    )

    # Action dispatcher
    claim_label: str = Field(default="Claim", alias="CLAIM_LABEL")
    claim_id_suffix: str = Field(default="claim-offer-button", alias="CLAIM_ID_SUFFIX")
    max_ancestor_levels: int = Field(default=3, alias="MAX_ANCESTOR_LEVELS", ge=0)
    max_claim_search_nodes: int = Field(default=400, alias="MAX_CLAIM_SEARCH_NODES", ge=1)

    # Application Settings
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: Path = Field(default=Path("./logs"), alias="LOG_DIR")
    log_rotation: str = Field(default="200 MB", alias="LOG_ROTATION")
    log_retention: str = Field(default="10 days", alias="LOG_RETENTION")
    error_log_retention: str = Field(default="30 days", alias="ERROR_LOG_RETENTION")
    log_pass_details: bool = Field(default=False, alias="LOG_PASS_DETAILS")
    notification_history: int = Field(default=50, alias="NOTIFICATION_HISTORY", ge=1)

    # Web surface
    web_host: str = Field(default="127.0.0.1", alias="WEB_HOST")
    web_port: int = Field(default=8765, alias="WEB_PORT")

    # Browser backend
    cdp_url: Optional[str] = Field(default=None, alias="CDP_URL")
    target_url: Optional[str] = Field(default=None, alias="TARGET_URL")
    headless: bool = Field(default=False, alias="HEADLESS")


def load_config():
    """Load and return application configuration."""
    return Settings()
