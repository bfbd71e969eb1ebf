"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.

The 5% tolerance and the 50,000 absolute floor / critical threshold mirror
the discrepancy rules used by the dashboard. Confidence weights and the
date lookback window are tunable defaults.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_log_level: str = Field(default="INFO")

    # Tolerance rules
    tolerance_pct: Decimal = Field(default=Decimal("0.05"))
    absolute_floor: Optional[Decimal] = Field(default=Decimal("50000"))
    critical_threshold: Decimal = Field(default=Decimal("50000"))
    medium_multiplier: Decimal = Field(default=Decimal("2"))
    high_multiplier: Decimal = Field(default=Decimal("3"))
    breakdown_epsilon: Decimal = Field(default=Decimal("0.01"))

    # Expected commission/tax rules
    expected_tax_rate: Optional[Decimal] = Field(default=None)
    channel_commission_rates: Dict[str, Decimal] = Field(default_factory=dict)

    # Confidence scoring
    lookback_days: int = Field(default=7)
    key_weight: float = Field(default=0.4)
    date_weight: float = Field(default=0.35)
    commission_weight: float = Field(default=0.25)

    # Reporting
    accuracy_target: Decimal = Field(default=Decimal("0.95"))

    # Batch processing
    chunk_size: int = Field(default=100)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class ToleranceConfig(BaseModel):
    """
    Business rules for a single reconciliation run.

    Read-only once built; safe to share between concurrent runs.
    """

    model_config = ConfigDict(frozen=True)

    tolerance_pct: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)
    absolute_floor: Optional[Decimal] = Field(default=Decimal("50000"), ge=0)
    critical_threshold: Decimal = Field(default=Decimal("50000"), ge=0)
    medium_multiplier: Decimal = Field(default=Decimal("2"), ge=1)
    high_multiplier: Decimal = Field(default=Decimal("3"), ge=1)
    breakdown_epsilon: Decimal = Field(default=Decimal("0.01"), ge=0)

    expected_tax_rate: Optional[Decimal] = Field(default=None, ge=0)
    channel_commission_rates: Dict[str, Decimal] = Field(default_factory=dict)

    lookback_days: int = Field(default=7, ge=0)
    key_weight: float = Field(default=0.4, ge=0)
    date_weight: float = Field(default=0.35, ge=0)
    commission_weight: float = Field(default=0.25, ge=0)

    accuracy_target: Decimal = Field(default=Decimal("0.95"), ge=0, le=1)
    chunk_size: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _check_multipliers(self) -> "ToleranceConfig":
        if self.high_multiplier < self.medium_multiplier:
            raise ValueError("high_multiplier must be >= medium_multiplier")
        for channel, rate in self.channel_commission_rates.items():
            if rate < 0 or rate > 1:
                raise ValueError(f"commission rate for {channel} must be within [0, 1]")
        return self

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "ToleranceConfig":
        """Build a run configuration from environment settings."""
        settings = settings or get_settings()
        values = {name: getattr(settings, name) for name in cls.model_fields}
        values.update(overrides)
        return cls(**values)

    def exceeds_tolerance(self, delta: Decimal, base: Decimal) -> bool:
        """
        Check whether a delta breaks the relative or absolute rule.

        Both comparisons are strict: a delta exactly at a threshold passes.
        A zero base can only be judged by the absolute floor.
        """
        delta = abs(delta)
        base = abs(base)
        if base > 0 and delta / base > self.tolerance_pct:
            return True
        if self.absolute_floor is not None and delta > self.absolute_floor:
            return True
        return False

    def escalation(self, delta: Decimal, base: Decimal) -> Decimal:
        """
        How many times over tolerance a delta is.

        Returns max(relative ratio / tolerance_pct, delta / absolute_floor);
        a zero threshold with a positive delta escalates to infinity.
        """
        delta = abs(delta)
        base = abs(base)
        ratios = [Decimal(0)]
        if base > 0:
            ratios.append(self._ratio(delta / base, self.tolerance_pct))
        if self.absolute_floor is not None:
            ratios.append(self._ratio(delta, self.absolute_floor))
        return max(ratios)

    @staticmethod
    def _ratio(value: Decimal, threshold: Decimal) -> Decimal:
        if threshold == 0:
            return Decimal("Infinity") if value > 0 else Decimal(0)
        return value / threshold

    def commission_rate_for(self, channel_id: str) -> Optional[Decimal]:
        return self.channel_commission_rates.get(channel_id)
