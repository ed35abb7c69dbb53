"""
Freshstock configuration schema.

Typed, frozen configuration for the services.  YAML documents are parsed
into these types by ``freshstock_config.loader``; services receive the
sections they need by constructor injection.  Every section validates
itself in ``__post_init__`` and raises ``ConfigurationError`` naming the
offending setting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Self

from freshstock_kernel.exceptions import ConfigurationError
from freshstock_kernel.logging_config import get_logger

logger = get_logger("config.schema")


def _dec(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class ExpiryConfig:
    """Expiry band boundaries in days."""

    urgent_days: int = 3
    warning_days: int = 7

    def __post_init__(self):
        if self.urgent_days < 1:
            raise ConfigurationError("expiry.urgent_days", "must be at least 1")
        if self.warning_days < self.urgent_days:
            raise ConfigurationError(
                "expiry.warning_days", "cannot be less than expiry.urgent_days",
            )


@dataclass(frozen=True)
class TransferCostConfig:
    """Linear transfer cost model."""

    base_cost: Decimal = Decimal("50000")
    per_unit_cost: Decimal = Decimal("1000")
    distance_multiplier: Decimal = Decimal("1.2")

    def __post_init__(self):
        if self.base_cost < 0:
            raise ConfigurationError("transfer_cost.base_cost", "cannot be negative")
        if self.per_unit_cost < 0:
            raise ConfigurationError("transfer_cost.per_unit_cost", "cannot be negative")
        if self.distance_multiplier <= 0:
            raise ConfigurationError(
                "transfer_cost.distance_multiplier", "must be positive",
            )


@dataclass(frozen=True)
class RecommendationConfig:
    """
    Recommendation engine knobs.

    ``min_roi_ratio`` and ``demand_threshold`` are business thresholds;
    change them here, not in code.
    """

    expiry_horizon_days: int = 30
    demand_window_days: int = 30
    demand_threshold: Decimal = Decimal("2")
    min_roi_ratio: Decimal = Decimal("0.2")
    max_transfer_fraction: Decimal = Decimal("0.5")
    imbalance_sample_size: int = 20
    excess_multiplier: Decimal = Decimal("1.5")
    optimal_stock_multiplier: Decimal = Decimal("2")
    optimal_stock_method: str = "minimum_multiple"
    lead_time_days: int = 7
    top_n: int = 50
    execution_lead_days: int = 1

    def __post_init__(self):
        if self.expiry_horizon_days < 1:
            raise ConfigurationError("recommendation.expiry_horizon_days", "must be >= 1")
        if self.demand_window_days < 1:
            raise ConfigurationError("recommendation.demand_window_days", "must be >= 1")
        if self.demand_threshold < 0:
            raise ConfigurationError("recommendation.demand_threshold", "cannot be negative")
        if self.min_roi_ratio < 0:
            raise ConfigurationError("recommendation.min_roi_ratio", "cannot be negative")
        if not Decimal("0") < self.max_transfer_fraction <= Decimal("1"):
            raise ConfigurationError(
                "recommendation.max_transfer_fraction", "must be in (0, 1]",
            )
        if self.imbalance_sample_size < 0:
            raise ConfigurationError(
                "recommendation.imbalance_sample_size", "cannot be negative",
            )
        if self.excess_multiplier < 1:
            raise ConfigurationError("recommendation.excess_multiplier", "must be >= 1")
        if self.optimal_stock_multiplier <= 0:
            raise ConfigurationError(
                "recommendation.optimal_stock_multiplier", "must be positive",
            )
        if self.optimal_stock_method not in ("minimum_multiple", "velocity"):
            raise ConfigurationError(
                "recommendation.optimal_stock_method",
                "must be 'minimum_multiple' or 'velocity'",
            )
        if self.lead_time_days < 0:
            raise ConfigurationError("recommendation.lead_time_days", "cannot be negative")
        if self.top_n < 1:
            raise ConfigurationError("recommendation.top_n", "must be >= 1")
        if self.execution_lead_days < 0:
            raise ConfigurationError(
                "recommendation.execution_lead_days", "cannot be negative",
            )


@dataclass(frozen=True)
class WorkflowConfig:
    """Transfer workflow authority and numbering."""

    elevated_approval_threshold: Decimal = Decimal("5000000")
    approver_roles: tuple[str, ...] = ("admin", "head_manager", "branch_manager")
    elevated_roles: tuple[str, ...] = ("admin", "head_manager")
    branch_scoped_roles: tuple[str, ...] = ("branch_manager",)
    transfer_number_prefix: str = "TF"

    def __post_init__(self):
        if self.elevated_approval_threshold < 0:
            raise ConfigurationError(
                "workflow.elevated_approval_threshold", "cannot be negative",
            )
        if not set(self.elevated_roles) <= set(self.approver_roles):
            raise ConfigurationError(
                "workflow.elevated_roles", "must be a subset of workflow.approver_roles",
            )
        if not set(self.branch_scoped_roles) <= set(self.approver_roles):
            raise ConfigurationError(
                "workflow.branch_scoped_roles",
                "must be a subset of workflow.approver_roles",
            )
        if not self.transfer_number_prefix or "-" in self.transfer_number_prefix:
            raise ConfigurationError(
                "workflow.transfer_number_prefix", "must be non-empty without '-'",
            )


@dataclass(frozen=True)
class CacheConfig:
    """Computation cache timings in seconds."""

    ttl_seconds: int = 300
    cooldown_seconds: int = 30

    def __post_init__(self):
        if self.ttl_seconds <= 0:
            raise ConfigurationError("cache.ttl_seconds", "must be positive")
        if self.cooldown_seconds < 0:
            raise ConfigurationError("cache.cooldown_seconds", "cannot be negative")


@dataclass(frozen=True)
class ProvincePairDistance:
    province_a: str
    province_b: str
    km: Decimal


@dataclass(frozen=True)
class DistanceConfig:
    """Distance heuristic in kilometres."""

    same_city_km: Decimal = Decimal("10")
    same_province_km: Decimal = Decimal("25")
    default_km: Decimal = Decimal("200")
    province_pairs: tuple[ProvincePairDistance, ...] = (
        ProvincePairDistance("DKI Jakarta", "Jawa Barat", Decimal("50")),
        ProvincePairDistance("Jawa Barat", "Jawa Timur", Decimal("150")),
        ProvincePairDistance("DKI Jakarta", "Jawa Timur", Decimal("180")),
    )

    def __post_init__(self):
        for name in ("same_city_km", "same_province_km", "default_km"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"distance.{name}", "cannot be negative")
        for pair in self.province_pairs:
            if pair.km < 0:
                raise ConfigurationError(
                    "distance.province_pairs",
                    f"{pair.province_a}/{pair.province_b} distance cannot be negative",
                )

    def overrides(self) -> dict[tuple[str, str], Decimal]:
        return {(p.province_a, p.province_b): p.km for p in self.province_pairs}


_DECIMAL_FIELDS: dict[str, tuple[str, ...]] = {
    "transfer_cost": ("base_cost", "per_unit_cost", "distance_multiplier"),
    "recommendation": (
        "demand_threshold",
        "min_roi_ratio",
        "max_transfer_fraction",
        "excess_multiplier",
        "optimal_stock_multiplier",
    ),
    "workflow": ("elevated_approval_threshold",),
    "distance": ("same_city_km", "same_province_km", "default_km"),
}

_TUPLE_FIELDS: dict[str, tuple[str, ...]] = {
    "workflow": ("approver_roles", "elevated_roles", "branch_scoped_roles"),
}


@dataclass(frozen=True)
class FreshstockConfig:
    """Complete configuration for one deployment."""

    expiry: ExpiryConfig = field(default_factory=ExpiryConfig)
    transfer_cost: TransferCostConfig = field(default_factory=TransferCostConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    distance: DistanceConfig = field(default_factory=DistanceConfig)

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("freshstock_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """
        Create config from a nested dictionary (e.g. parsed YAML).

        Unknown sections or keys raise ConfigurationError.
        """
        sections = {
            "expiry": ExpiryConfig,
            "transfer_cost": TransferCostConfig,
            "recommendation": RecommendationConfig,
            "workflow": WorkflowConfig,
            "cache": CacheConfig,
            "distance": DistanceConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(
                ",".join(sorted(unknown)), "unknown configuration section",
            )

        logger.info(
            "freshstock_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )

        kwargs: dict[str, Any] = {}
        for name, section_cls in sections.items():
            raw = dict(data.get(name) or {})
            for key in _DECIMAL_FIELDS.get(name, ()):
                if key in raw:
                    raw[key] = _dec(raw[key])
            for key in _TUPLE_FIELDS.get(name, ()):
                if key in raw:
                    raw[key] = tuple(raw[key])
            if name == "distance" and "province_pairs" in raw:
                raw["province_pairs"] = tuple(
                    ProvincePairDistance(
                        province_a=p["province_a"],
                        province_b=p["province_b"],
                        km=_dec(p["km"]),
                    )
                    for p in raw["province_pairs"]
                )
            try:
                kwargs[name] = section_cls(**raw)
            except TypeError as exc:
                raise ConfigurationError(name, str(exc)) from exc
        return cls(**kwargs)
