"""
Stack-backed nodegroup labels
Reads and updates labels kept in a nodegroup's CloudFormation stack, and
classifies stack failures so callers can tell a missing stack (the nodegroup
was not created from a stack) apart from a real fault
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import yaml
from botocore.exceptions import BotoCoreError, ClientError

from nodefleet.errors import StackTemplateError

logger = logging.getLogger()

NODEGROUP_RESOURCE_TYPE = 'AWS::EKS::Nodegroup'
VALIDATION_ERROR_CODE = 'ValidationError'
NO_UPDATES_MESSAGE = 'No updates are to be performed'


@dataclass
class StackOk:
    """Stack call succeeded; labels is empty for updates"""
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class StackNotGoverned:
    """The nodegroup has no stack, so its labels live only in EKS"""
    cause: Exception


@dataclass
class StackFailure:
    """Any other stack failure; never a reason to go around the stack"""
    cause: Exception


StackResult = Union[StackOk, StackNotGoverned, StackFailure]


def _error_chain(err: BaseException):
    seen = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_stack_error(err: Exception) -> StackResult:
    """
    Classify a stack failure

    The error chain (__cause__/__context__) is unwrapped; if any link is a
    ValidationError from the control plane the stack does not exist.

    Returns:
        StackNotGoverned for validation errors, StackFailure otherwise
    """
    for link in _error_chain(err):
        if isinstance(link, ClientError):
            if link.response.get('Error', {}).get('Code') == VALIDATION_ERROR_CODE:
                return StackNotGoverned(err)
    return StackFailure(err)


def _is_no_op_update(err: ClientError) -> bool:
    error = err.response.get('Error', {})
    return error.get('Code') == VALIDATION_ERROR_CODE and NO_UPDATES_MESSAGE in error.get('Message', '')


def stack_name_for(cluster_name: str, nodegroup_name: str) -> str:
    return f"eksctl-{cluster_name}-nodegroup-{nodegroup_name}"


class CloudFormationLabelService:
    """Nodegroup labels stored in the nodegroup's CloudFormation stack template"""

    def __init__(self, cluster_name: str, cloudformation_client):
        self.cluster_name = cluster_name
        self.cloudformation = cloudformation_client

    def get_labels(self, nodegroup_name: str) -> StackResult:
        """
        Read the labels from the nodegroup stack

        Args:
            nodegroup_name: Nodegroup name

        Returns:
            StackOk with the labels, or the classified failure
        """
        stack_name = stack_name_for(self.cluster_name, nodegroup_name)
        try:
            template = self._get_template(stack_name)
            properties = self._nodegroup_properties(template, stack_name)
        except ClientError as e:
            return classify_stack_error(e)
        except (BotoCoreError, StackTemplateError) as e:
            return StackFailure(e)

        labels = properties.get('Labels') or {}
        return StackOk({k: str(v) for k, v in labels.items()})

    def update_labels(self, nodegroup_name: str, add_or_update: Dict[str, str], remove: List[str]) -> StackResult:
        """
        Update the labels in the nodegroup stack template

        Removals are applied before additions. The stack is updated with its
        previous parameter values; completion is not awaited. Only a failure to
        find the stack can report the nodegroup as not governed; once the
        stack is known to exist, a rejected update is a StackFailure.
        """
        stack_name = stack_name_for(self.cluster_name, nodegroup_name)
        try:
            template = self._get_template(stack_name)
            properties = self._nodegroup_properties(template, stack_name)
            stack = self._describe_stack(stack_name)
        except ClientError as e:
            return classify_stack_error(e)
        except (BotoCoreError, StackTemplateError) as e:
            return StackFailure(e)

        labels = dict(properties.get('Labels') or {})
        for key in remove:
            labels.pop(key, None)
        labels.update(add_or_update)
        properties['Labels'] = labels

        update_args: Dict[str, Any] = {
            'StackName': stack_name,
            'TemplateBody': json.dumps(template),
            'Parameters': [
                {'ParameterKey': p['ParameterKey'], 'UsePreviousValue': True}
                for p in stack.get('Parameters', [])
            ],
        }
        if stack.get('Capabilities'):
            update_args['Capabilities'] = stack['Capabilities']

        try:
            self.cloudformation.update_stack(**update_args)
        except ClientError as e:
            if _is_no_op_update(e):
                logger.info(f"Labels on stack {stack_name} already up to date")
                return StackOk()
            logger.error(f"Stack {stack_name} rejected the label update: {str(e)}")
            return StackFailure(e)
        except BotoCoreError as e:
            return StackFailure(e)

        logger.info(f"Updating labels on stack {stack_name}")
        return StackOk()

    def _get_template(self, stack_name: str) -> Dict:
        response = self.cloudformation.get_template(StackName=stack_name, TemplateStage='Original')
        body = response['TemplateBody']
        if isinstance(body, dict):
            return body

        try:
            return json.loads(body)
        except ValueError:
            pass

        try:
            parsed = yaml.safe_load(body)
        except yaml.YAMLError as e:
            raise StackTemplateError(f"cannot parse template of stack {stack_name}: {e}") from e
        if not isinstance(parsed, dict):
            raise StackTemplateError(f"template of stack {stack_name} is not a mapping")
        return parsed

    def _nodegroup_properties(self, template: Dict, stack_name: str) -> Dict:
        for resource in (template.get('Resources') or {}).values():
            if resource.get('Type') == NODEGROUP_RESOURCE_TYPE:
                return resource.setdefault('Properties', {})
        raise StackTemplateError(f"stack {stack_name} has no {NODEGROUP_RESOURCE_TYPE} resource")

    def _describe_stack(self, stack_name: str) -> Dict:
        stacks = self.cloudformation.describe_stacks(StackName=stack_name).get('Stacks') or []
        if not stacks:
            raise StackTemplateError(f"stack {stack_name} was not described")
        return stacks[0]
