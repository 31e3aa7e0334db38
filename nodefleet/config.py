"""
Configuration for nodefleet
Environment settings, zone thresholds and the availability zone denylist
"""

import os
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

import yaml

from nodefleet.errors import ConfigError

logger = logging.getLogger()

MIN_REQUIRED_AVAILABILITY_ZONES = 2
RECOMMENDED_AVAILABILITY_ZONES = 3

REGION_US_EAST_1 = "us-east-1"
REGION_CN_NORTH_1 = "cn-north-1"

# us-east-1 is short on capacity in several zones
REDUCED_ZONE_REGIONS = frozenset({REGION_US_EAST_1})

DEFAULT_ZONE_DENYLIST = {
    REGION_CN_NORTH_1: ["cnn1-az4"],
}


@dataclass(frozen=True)
class Settings:
    cluster_name: str
    region: str
    zone_denylist_file: Optional[str] = None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from environment variables"""
    env = os.environ if environ is None else environ
    return Settings(
        cluster_name=env.get("CLUSTER_NAME", "node-fleet-cluster"),
        region=env.get("AWS_REGION", "ap-south-1"),
        zone_denylist_file=env.get("ZONE_DENYLIST_FILE") or None,
    )


def build_denylist(overrides: Optional[Mapping[str, Iterable[str]]] = None) -> Mapping[str, FrozenSet[str]]:
    """
    Build the read-only region -> zone id denylist

    Args:
        overrides: Extra zone ids per region, merged with the defaults

    Returns:
        Immutable mapping of region name to frozenset of zone ids
    """
    merged: Dict[str, set] = {region: set(ids) for region, ids in DEFAULT_ZONE_DENYLIST.items()}
    for region, zone_ids in (overrides or {}).items():
        merged.setdefault(region, set()).update(zone_ids)

    return MappingProxyType({region: frozenset(ids) for region, ids in merged.items()})


def load_denylist(path: Optional[str] = None) -> Mapping[str, FrozenSet[str]]:
    """
    Load the denylist, optionally extended from a YAML file

    The file is a mapping of region name to a list of zone ids:

        cn-north-1:
          - cnn1-az4
        eu-west-1:
          - euw1-az3
    """
    if not path:
        return build_denylist()

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read zone denylist file {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"zone denylist file {path} must contain a mapping of region to zone ids")

    for region, zone_ids in data.items():
        if not isinstance(zone_ids, list) or not all(isinstance(z, str) for z in zone_ids):
            raise ConfigError(f"zone denylist entry for {region} must be a list of zone ids")

    logger.info(f"Loaded zone denylist overrides for {len(data)} region(s) from {path}")
    return build_denylist(data)
