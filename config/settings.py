"""
Configuration settings for the sharp-vs-Polymarket signal engine.
Uses pydantic-settings for validation and environment variable loading.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Raised at startup when required settings are missing or invalid."""


class OddsAPISettings(BaseSettings):
    """The Odds API connection."""

    api_key: str = Field(default="", description="The Odds API key (required)")
    base_url: str = "https://api.the-odds-api.com/v4"
    regions: str = "us,uk,eu"
    markets: str = "h2h"
    timeout_seconds: float = 15.0
    requests_per_minute: int = 30


class ClobSettings(BaseSettings):
    """Polymarket CLOB batch price endpoints."""

    api_url: str = "https://clob.polymarket.com"
    timeout_seconds: float = 10.0

    # Provider caps the number of instruments per batch request
    chunk_size: int = 100
    max_concurrent_chunks: int = 3


class ResolverSettings(BaseSettings):
    """AI-assisted team resolution (last-resort matching tier)."""

    enabled: bool = False
    api_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 4.0
    max_calls_per_run: int = 5
    min_confidence: float = 0.7


class MatchingSettings(BaseSettings):
    """Event matcher thresholds."""

    max_start_diff_hours: float = 24.0
    fuzzy_similarity_floor: float = 0.5


class ConsensusSettings(BaseSettings):
    """Consensus probability engine."""

    sharp_weight: float = 1.5
    soft_weight: float = 1.0
    min_book_fair_prob: float = 0.08
    max_book_fair_prob: float = 0.92
    complement_tolerance: float = 0.05


class MovementSettings(BaseSettings):
    """Sharp-book movement detection."""

    window_minutes: float = 30.0
    recent_minutes: float = 10.0
    min_threshold: float = 0.02
    relative_threshold: float = 0.12
    min_recent_share: float = 0.70
    min_confirming_books: int = 2
    counter_move_veto: float = 0.02


class CostSettings(BaseSettings):
    """Transaction-cost model applied to raw edge."""

    platform_fee_rate: float = 0.01

    # (min 24h volume, spread cost), evaluated top-down
    spread_tiers: list[tuple[float, float]] = Field(default_factory=lambda: [
        (500_000.0, 0.005),
        (100_000.0, 0.01),
        (50_000.0, 0.015),
        (10_000.0, 0.02),
    ])
    default_spread: float = 0.03
    min_spread: float = 0.005
    max_spread: float = 0.03

    # (max stake/volume ratio, slippage), evaluated top-down
    slippage_tiers: list[tuple[float, float]] = Field(default_factory=lambda: [
        (0.001, 0.002),
        (0.005, 0.005),
        (0.01, 0.01),
        (0.02, 0.02),
    ])
    default_slippage: float = 0.03

    stale_price_seconds: float = 180.0
    stale_fair_prob: float = 0.85
    extreme_fair_prob: float = 0.90
    max_raw_edge: float = 0.40
    movement_override_min_edge: float = 0.01


class SignalSettings(BaseSettings):
    """Signal trigger, tier and scoring constants."""

    min_net_edge: float = 0.02
    min_raw_edge: float = 0.05
    min_volume: float = 10_000.0

    elite_net_edge: float = 0.05
    strong_net_edge: float = 0.03
    large_raw_edge: float = 0.10

    # confidence = min(cap, base + floor(net_edge * slope))
    confidence_base: int = 50
    confidence_slope: float = 500.0
    confidence_cap: int = 85

    critical_seconds: float = 3600.0
    high_seconds: float = 14400.0

    stake_usd: float = 100.0
    kelly_fraction: float = 0.25
    max_exposure_fraction: float = 0.05


class AlertSettings(BaseSettings):
    """Outbound alert webhook."""

    webhook_url: str = Field(default="", description="Alert webhook URL")
    max_hours_ahead: float = 24.0


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/sharpedge.db"

    # Sub-settings
    odds_api: OddsAPISettings = Field(default_factory=OddsAPISettings)
    clob: ClobSettings = Field(default_factory=ClobSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    consensus: ConsensusSettings = Field(default_factory=ConsensusSettings)
    movement: MovementSettings = Field(default_factory=MovementSettings)
    costs: CostSettings = Field(default_factory=CostSettings)
    signals: SignalSettings = Field(default_factory=SignalSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)

    def validate_credentials(self) -> None:
        """Fail fast on missing provider credentials."""
        if not self.odds_api.api_key:
            raise ConfigurationError("Missing ODDS_API__API_KEY")
        if self.resolver.enabled and not self.resolver.api_key:
            raise ConfigurationError("Resolver enabled but RESOLVER__API_KEY is empty")

    @property
    def sqlite_path(self) -> Optional[str]:
        """Filesystem path from a sqlite URL, or None for other schemes."""
        prefix = "sqlite+aiosqlite:///"
        if self.database_url.startswith(prefix):
            return self.database_url[len(prefix):]
        if self.database_url.startswith("sqlite:///"):
            return self.database_url[len("sqlite:///"):]
        return None


# Global settings instance
settings = Settings()
