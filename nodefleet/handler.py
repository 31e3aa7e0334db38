"""
Lambda handler for nodegroup labels and availability zones

Event shape:
    {"action": "get_labels", "nodegroup": "ng-1"}
    {"action": "set_labels", "nodegroup": "ng-1", "labels": {"team": "data"}}
    {"action": "unset_labels", "nodegroup": "ng-1", "keys": ["team"]}
    {"action": "select_zones", "region": "eu-west-1"}
    {"action": "set_local_zones", "local_zones": ["us-west-2-lax-1a"], "vpc_id": null}
"""

import logging
from dataclasses import asdict
from typing import Any, Dict

import boto3

from nodefleet.config import load_denylist, load_settings
from nodefleet.label_manager import LabelManager
from nodefleet.stack_service import CloudFormationLabelService
from nodefleet.zones import ClusterConfig, ZoneSelector

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _label_manager(settings) -> LabelManager:
    stack_service = CloudFormationLabelService(
        settings.cluster_name,
        boto3.client('cloudformation', region_name=settings.region)
    )
    return LabelManager(settings.cluster_name, stack_service, boto3.client('eks', region_name=settings.region))


def _zone_selector(settings) -> ZoneSelector:
    return ZoneSelector(
        boto3.client('ec2', region_name=settings.region),
        load_denylist(settings.zone_denylist_file)
    )


REQUIRED_FIELDS = {
    'get_labels': ['nodegroup'],
    'set_labels': ['nodegroup', 'labels'],
    'unset_labels': ['nodegroup', 'keys'],
    'select_zones': [],
    'set_local_zones': [],
}


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    return {"statusCode": status_code, "body": body}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Dispatch a label or zone request

    Args:
        event: Request with an "action" and its arguments
        context: Lambda context

    Returns:
        200 with the result, 400 for a bad request, 500 for a backend failure
    """
    settings = load_settings()
    action = event.get('action')
    logger.info(f"nodefleet {action} request for cluster {settings.cluster_name}")

    if action not in REQUIRED_FIELDS:
        logger.error(f"Unknown action: {action}")
        return _response(400, f"unknown action {action}")

    missing = [name for name in REQUIRED_FIELDS[action] if name not in event]
    if missing:
        logger.error(f"Missing field(s) {missing} for action {action}")
        return _response(400, f"missing field(s) {', '.join(missing)}")

    try:
        if action == 'get_labels':
            summary = _label_manager(settings).get(event['nodegroup'])
            return _response(200, [asdict(s) for s in summary])

        if action == 'set_labels':
            _label_manager(settings).set(event['nodegroup'], event['labels'])
            return _response(200, "labels set")

        if action == 'unset_labels':
            _label_manager(settings).unset(event['nodegroup'], event['keys'])
            return _response(200, "labels removed")

        if action == 'select_zones':
            region = event.get('region') or settings.region
            return _response(200, _zone_selector(settings).select_zones(region))

        cluster_config = ClusterConfig(
            name=settings.cluster_name,
            region=event.get('region') or settings.region,
            vpc_id=event.get('vpc_id'),
            local_zones=list(event.get('local_zones') or [])
        )
        _zone_selector(settings).set_local_zones(cluster_config)
        return _response(200, cluster_config.local_zones)

    except Exception as e:
        logger.error(f"{action} failed: {str(e)}", exc_info=True)
        return _response(500, str(e))
