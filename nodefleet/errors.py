"""
Error types raised by nodefleet
Backend (botocore) errors are not wrapped here, they propagate unchanged
"""

from typing import List


class NodefleetError(Exception):
    """Base class for nodefleet errors"""


class ConfigError(NodefleetError):
    """Invalid configuration (environment or denylist file)"""


class InsufficientZonesError(NodefleetError):
    """Fewer usable availability zones than the cluster needs"""

    def __init__(self, zones: List[str], required: int):
        self.zones = list(zones)
        self.count = len(self.zones)
        self.required = required
        zone_list = " ".join(self.zones)
        super().__init__(
            f"only {self.count} zones discovered [{zone_list}], at least {required} are required"
        )


class ZoneSourceError(NodefleetError):
    """The availability zone query failed"""


class StackTemplateError(NodefleetError):
    """Nodegroup stack exists but its template has no nodegroup resource"""
