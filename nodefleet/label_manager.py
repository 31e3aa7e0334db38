"""
Nodegroup label manager
Gets, sets and unsets labels on a nodegroup through its stack, falling back
to the EKS API for nodegroups that were not created from a stack
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

from nodefleet import metrics
from nodefleet.stack_service import StackFailure, StackNotGoverned, StackOk, StackResult

logger = logging.getLogger()


@dataclass
class LabelSummary:
    cluster: str
    nodegroup: str
    labels: Dict[str, str]


class LabelManager:
    """Labels for the nodegroups of one cluster"""

    def __init__(self, cluster_name: str, stack_service, eks_client):
        self.cluster_name = cluster_name
        self.stack_service = stack_service
        self.eks_client = eks_client

    def get(self, nodegroup_name: str) -> List[LabelSummary]:
        """
        Get the labels of a nodegroup

        Args:
            nodegroup_name: Nodegroup name

        Returns:
            One-element list with the nodegroup's labels
        """
        result = self.stack_service.get_labels(nodegroup_name)
        if self._from_stack(result, 'get', nodegroup_name):
            return [self._summary(nodegroup_name, result.labels)]

        response = self.eks_client.describe_nodegroup(
            clusterName=self.cluster_name,
            nodegroupName=nodegroup_name
        )
        eks_labels = response.get('nodegroup', {}).get('labels') or {}
        labels = {k: v if v is not None else "" for k, v in eks_labels.items()}
        metrics.label_operations.labels(operation='get', backend='eks').inc()
        return [self._summary(nodegroup_name, labels)]

    def set(self, nodegroup_name: str, labels: Dict[str, str]) -> None:
        """Add or update labels; other labels are left untouched"""
        result = self.stack_service.update_labels(nodegroup_name, labels, [])
        if self._from_stack(result, 'set', nodegroup_name):
            return

        self.eks_client.update_nodegroup_config(
            clusterName=self.cluster_name,
            nodegroupName=nodegroup_name,
            labels={'addOrUpdateLabels': dict(labels)}
        )
        logger.info(f"Set {len(labels)} label(s) on nodegroup {nodegroup_name} through EKS")
        metrics.label_operations.labels(operation='set', backend='eks').inc()

    def unset(self, nodegroup_name: str, keys: List[str]) -> None:
        """Remove labels by key; other labels are left untouched"""
        result = self.stack_service.update_labels(nodegroup_name, {}, keys)
        if self._from_stack(result, 'unset', nodegroup_name):
            return

        self.eks_client.update_nodegroup_config(
            clusterName=self.cluster_name,
            nodegroupName=nodegroup_name,
            labels={'removeLabels': list(keys)}
        )
        logger.info(f"Removed {len(keys)} label(s) from nodegroup {nodegroup_name} through EKS")
        metrics.label_operations.labels(operation='unset', backend='eks').inc()

    def _from_stack(self, result: StackResult, operation: str, nodegroup_name: str) -> bool:
        """
        Decide whether the stack served the call

        Returns True when it did, False when the nodegroup has no stack and
        the EKS API must be used. A stack failure is re-raised as is.
        """
        if isinstance(result, StackOk):
            logger.info(f"{operation} labels for nodegroup {nodegroup_name} served by its stack")
            metrics.label_operations.labels(operation=operation, backend='stack').inc()
            return True
        if isinstance(result, StackNotGoverned):
            logger.warning(
                f"Nodegroup {nodegroup_name} is not managed by a stack, using EKS API for {operation}"
            )
            return False
        if isinstance(result, StackFailure):
            raise result.cause
        raise TypeError(f"unexpected stack result {result!r}")

    def _summary(self, nodegroup_name: str, labels: Dict[str, str]) -> LabelSummary:
        return LabelSummary(cluster=self.cluster_name, nodegroup=nodegroup_name, labels=dict(labels))
