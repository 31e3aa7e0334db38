"""
Prometheus metrics for label and zone operations
"""

from prometheus_client import Counter

label_operations = Counter(
    'nodefleet_label_operations_total',
    'Nodegroup label operations by the backend that served them',
    ['operation', 'backend']
)

zone_selections = Counter(
    'nodefleet_zone_selections_total',
    'Availability zone selections by outcome',
    ['region', 'outcome']
)
