"""
Availability zone selection
Picks the zones a cluster is spread across and validates requested local
zones, never handing out a denylisted zone
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from nodefleet import metrics
from nodefleet.config import (
    MIN_REQUIRED_AVAILABILITY_ZONES,
    RECOMMENDED_AVAILABILITY_ZONES,
    REDUCED_ZONE_REGIONS,
)
from nodefleet.errors import InsufficientZonesError, ZoneSourceError

logger = logging.getLogger()


@dataclass
class ClusterConfig:
    """The parts of a cluster definition zone validation reads and writes"""
    name: str
    region: str
    vpc_id: Optional[str] = None
    local_zones: List[str] = field(default_factory=list)


def make_filter(name: str, value: str) -> Dict:
    return {'Name': name, 'Values': [value]}


def filter_zones(region: str, zones: List[Dict], denylist: Mapping[str, FrozenSet[str]]) -> List[str]:
    """
    Drop denylisted and repeated zones, keeping source order

    Args:
        region: Region the zones belong to
        zones: AvailabilityZones entries from describe_availability_zones
        denylist: Region -> zone ids that must never be used

    Returns:
        Names of the remaining zones
    """
    zone_ids_to_avoid = denylist.get(region, frozenset())
    names = []
    for zone in zones:
        if zone.get('ZoneId') in zone_ids_to_avoid or zone['ZoneName'] in names:
            continue
        names.append(zone['ZoneName'])
    return names


class ZoneSelector:
    """Selects availability zones for cluster networking"""

    def __init__(self, ec2_client, denylist: Mapping[str, FrozenSet[str]],
                 rng_factory: Optional[Callable[[], random.Random]] = None):
        self.ec2_client = ec2_client
        self.denylist = denylist
        # A fresh generator per call; random.Random() seeds from the OS
        self.rng_factory = rng_factory or random.Random

    def select_zones(self, region: str) -> List[str]:
        """
        Select the availability zones to use in a region

        Args:
            region: AWS region name

        Returns:
            Unique zone names: every usable zone, in source order, when there
            are no more than the region needs, otherwise a random subset
        """
        zones = self._get_availability_zones(region)

        if len(zones) < MIN_REQUIRED_AVAILABILITY_ZONES:
            metrics.zone_selections.labels(region=region, outcome='insufficient').inc()
            raise InsufficientZonesError(zones, MIN_REQUIRED_AVAILABILITY_ZONES)

        desired = self._desired_number_of_zones(region)
        if len(zones) < RECOMMENDED_AVAILABILITY_ZONES or len(zones) <= desired:
            metrics.zone_selections.labels(region=region, outcome='all').inc()
            logger.info(f"Using all {len(zones)} available zones in {region}: {zones}")
            return zones

        selected = self._random_selection_of_zones(zones, desired)
        metrics.zone_selections.labels(region=region, outcome='sampled').inc()
        logger.info(f"Selected zones {selected} out of {len(zones)} available in {region}")
        return selected

    def set_local_zones(self, cluster_config: ClusterConfig, region: Optional[str] = None) -> None:
        """
        Validate the cluster's requested local zones

        Zones that are denylisted, unavailable or unknown are dropped from
        cluster_config.local_zones. The field is left as is when the query fails.
        """
        if not cluster_config.local_zones:
            return

        region = region or cluster_config.region
        requested = list(cluster_config.local_zones)

        if cluster_config.vpc_id:
            logger.warning(
                "Ignoring localZones since existing VPC ID was specified; local zones are "
                "only supported when creating a new VPC"
            )

        try:
            response = self.ec2_client.describe_availability_zones(
                ZoneNames=requested,
                Filters=[
                    make_filter('region-name', region),
                    make_filter('zone-type', 'local-zone'),
                    make_filter('state', 'available'),
                ]
            )
        except (ClientError, BotoCoreError) as e:
            raise ZoneSourceError(f"error validating local zone(s) {requested}: {e}") from e

        local_zones = filter_zones(region, response.get('AvailabilityZones', []), self.denylist)
        dropped = [z for z in requested if z not in local_zones]
        if dropped:
            logger.warning(f"Dropping unusable local zone(s) {dropped} in {region}")

        cluster_config.local_zones = local_zones

    def _get_availability_zones(self, region: str) -> List[str]:
        try:
            response = self.ec2_client.describe_availability_zones(
                Filters=[
                    make_filter('region-name', region),
                    make_filter('state', 'available'),
                ]
            )
        except (ClientError, BotoCoreError) as e:
            raise ZoneSourceError(f"error getting availability zones for region {region}: {e}") from e

        return filter_zones(region, response.get('AvailabilityZones', []), self.denylist)

    def _desired_number_of_zones(self, region: str) -> int:
        if region in REDUCED_ZONE_REGIONS:
            return MIN_REQUIRED_AVAILABILITY_ZONES
        return RECOMMENDED_AVAILABILITY_ZONES

    def _random_selection_of_zones(self, available_zones: List[str], desired: int) -> List[str]:
        zones = list(available_zones)
        self.rng_factory().shuffle(zones)
        return zones[:desired]
