"""
Unit tests for the Lambda handler
"""

import pytest
from unittest.mock import MagicMock, patch
from botocore.exceptions import ClientError

from nodefleet import handler


@pytest.fixture
def clients(monkeypatch):
    """Mock boto3 clients by service name"""
    monkeypatch.setenv('CLUSTER_NAME', 'foo')
    monkeypatch.setenv('AWS_REGION', 'us-west-2')
    monkeypatch.delenv('ZONE_DENYLIST_FILE', raising=False)

    mocks = {
        'cloudformation': MagicMock(),
        'eks': MagicMock(),
        'ec2': MagicMock(),
    }
    with patch('nodefleet.handler.boto3') as mock_boto:
        mock_boto.client.side_effect = lambda service, **kwargs: mocks[service]
        yield mocks


def missing_stack(operation='GetTemplate'):
    return ClientError(
        {'Error': {'Code': 'ValidationError', 'Message': 'Stack with id eksctl-foo-nodegroup-bar does not exist'}},
        operation
    )


def test_get_labels_from_stack(clients):
    clients['cloudformation'].get_template.return_value = {
        'TemplateBody': {
            'Resources': {
                'ManagedNodeGroup': {'Type': 'AWS::EKS::Nodegroup', 'Properties': {'Labels': {'k1': 'v1'}}}
            }
        }
    }

    result = handler.lambda_handler({'action': 'get_labels', 'nodegroup': 'bar'}, None)

    assert result['statusCode'] == 200
    assert result['body'] == [{'cluster': 'foo', 'nodegroup': 'bar', 'labels': {'k1': 'v1'}}]
    clients['eks'].describe_nodegroup.assert_not_called()


def test_set_labels_without_stack(clients):
    clients['cloudformation'].get_template.side_effect = missing_stack()

    result = handler.lambda_handler(
        {'action': 'set_labels', 'nodegroup': 'bar', 'labels': {'k1': 'v1'}}, None
    )

    assert result['statusCode'] == 200
    clients['eks'].update_nodegroup_config.assert_called_once_with(
        clusterName='foo',
        nodegroupName='bar',
        labels={'addOrUpdateLabels': {'k1': 'v1'}}
    )


def test_unset_labels_without_stack(clients):
    clients['cloudformation'].get_template.side_effect = missing_stack()

    result = handler.lambda_handler({'action': 'unset_labels', 'nodegroup': 'bar', 'keys': ['k1']}, None)

    assert result['statusCode'] == 200
    clients['eks'].update_nodegroup_config.assert_called_once_with(
        clusterName='foo',
        nodegroupName='bar',
        labels={'removeLabels': ['k1']}
    )


def test_select_zones(clients):
    clients['ec2'].describe_availability_zones.return_value = {
        'AvailabilityZones': [
            {'ZoneName': 'us-west-2a', 'ZoneId': 'usw2-az1'},
            {'ZoneName': 'us-west-2b', 'ZoneId': 'usw2-az2'},
        ]
    }

    result = handler.lambda_handler({'action': 'select_zones'}, None)

    assert result == {'statusCode': 200, 'body': ['us-west-2a', 'us-west-2b']}


def test_select_zones_insufficient(clients):
    clients['ec2'].describe_availability_zones.return_value = {
        'AvailabilityZones': [{'ZoneName': 'us-west-2a', 'ZoneId': 'usw2-az1'}]
    }

    result = handler.lambda_handler({'action': 'select_zones', 'region': 'us-west-2'}, None)

    assert result['statusCode'] == 500
    assert "at least 2 are required" in result['body']


def test_set_local_zones(clients):
    clients['ec2'].describe_availability_zones.return_value = {
        'AvailabilityZones': [{'ZoneName': 'us-west-2-lax-1a', 'ZoneId': 'usw2-lax1-az1'}]
    }

    result = handler.lambda_handler(
        {'action': 'set_local_zones', 'local_zones': ['us-west-2-lax-1a', 'us-west-2-lax-1b']}, None
    )

    assert result == {'statusCode': 200, 'body': ['us-west-2-lax-1a']}


def test_stack_failure_is_reported(clients):
    clients['cloudformation'].get_template.side_effect = ClientError(
        {'Error': {'Code': 'AccessDenied', 'Message': 'not authorized'}},
        'GetTemplate'
    )

    result = handler.lambda_handler({'action': 'get_labels', 'nodegroup': 'bar'}, None)

    assert result['statusCode'] == 500
    assert "not authorized" in result['body']
    clients['eks'].describe_nodegroup.assert_not_called()


def test_missing_field(clients):
    result = handler.lambda_handler({'action': 'set_labels', 'nodegroup': 'bar'}, None)

    assert result['statusCode'] == 400


def test_unknown_action(clients):
    result = handler.lambda_handler({'action': 'drain'}, None)

    assert result['statusCode'] == 400
    assert "drain" in result['body']


def test_missing_fields_are_named(clients):
    result = handler.lambda_handler({'action': 'unset_labels'}, None)

    assert result == {'statusCode': 400, 'body': 'missing field(s) nodegroup, keys'}
    clients['cloudformation'].get_template.assert_not_called()


def test_malformed_zone_response_is_a_server_error(clients):
    """Test a KeyError inside the backend is not reported as a bad request"""
    clients['ec2'].describe_availability_zones.return_value = {
        'AvailabilityZones': [{'ZoneId': 'usw2-az1'}, {'ZoneId': 'usw2-az2'}]
    }

    result = handler.lambda_handler({'action': 'select_zones'}, None)

    assert result['statusCode'] == 500


def test_empty_stack_description_is_a_server_error(clients):
    clients['cloudformation'].get_template.return_value = {
        'TemplateBody': {
            'Resources': {
                'ManagedNodeGroup': {'Type': 'AWS::EKS::Nodegroup', 'Properties': {}}
            }
        }
    }
    clients['cloudformation'].describe_stacks.return_value = {'Stacks': []}

    result = handler.lambda_handler({'action': 'set_labels', 'nodegroup': 'bar', 'labels': {'k1': 'v1'}}, None)

    assert result['statusCode'] == 500
    clients['eks'].update_nodegroup_config.assert_not_called()
