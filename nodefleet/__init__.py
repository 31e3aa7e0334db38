"""
nodefleet: nodegroup labels and availability zone selection for node-fleet clusters
"""

from nodefleet.label_manager import LabelManager, LabelSummary
from nodefleet.zones import ClusterConfig, ZoneSelector

__version__ = "0.1.0"
