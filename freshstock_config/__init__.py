"""
Freshstock configuration.

Usage:
    from freshstock_config import load_config

    config = load_config()                 # packaged defaults
    config = load_config("site.yaml")      # deployment file
"""

from freshstock_config.loader import (
    compute_checksum,
    load_config,
    load_yaml_file,
    parse_config,
)
from freshstock_config.schema import (
    CacheConfig,
    DistanceConfig,
    ExpiryConfig,
    FreshstockConfig,
    ProvincePairDistance,
    RecommendationConfig,
    TransferCostConfig,
    WorkflowConfig,
)

__all__ = [
    "load_config",
    "load_yaml_file",
    "parse_config",
    "compute_checksum",
    "FreshstockConfig",
    "ExpiryConfig",
    "TransferCostConfig",
    "RecommendationConfig",
    "WorkflowConfig",
    "CacheConfig",
    "DistanceConfig",
    "ProvincePairDistance",
]
