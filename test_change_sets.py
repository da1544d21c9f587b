"""Tests for change set handling (CFStacks/change_sets.py)."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, WaiterError

from CFStacks import __version__
from CFStacks.change_sets import (
    ChangeSetError,
    ChangeSetManager,
    build_parameters,
    format_change,
    resource_action
)

TEMPLATE_URL = 'https://releases.example.com/v13.0.0/vpc/vpc-2azs.yaml'


def client_error(operation, message='Access Denied'):
    return ClientError({'Error': {'Code': 'ValidationError', 'Message': message}}, operation)


def waiter_error():
    return WaiterError(name='ChangeSetCreateComplete', reason='Waiter encountered a terminal failure state', last_response={})


@pytest.fixture
def releases():
    releases = MagicMock()
    releases.template_url.return_value = TEMPLATE_URL
    return releases


@pytest.fixture
def manager(fake_clients, releases):
    return ChangeSetManager('eu-west-1', clients=fake_clients, releases=releases)


@pytest.fixture
def cf_client(fake_clients):
    cf_client = fake_clients.client('cloudformation', 'eu-west-1')
    cf_client.get_template_summary.return_value = {
        'Parameters': [
            {'ParameterKey': 'ParentVPCStack'},
            {'ParameterKey': 'NewParameter', 'DefaultValue': 'default'},
        ]
    }
    cf_client.create_change_set.return_value = {'Id': 'arn:change-set'}
    return cf_client


class TestBuildParameters:

    def test_previous_values_and_defaults(self):
        template_parameters = [
            {'ParameterKey': 'ParentVPCStack'},
            {'ParameterKey': 'KeyName', 'DefaultValue': ''},
            {'ParameterKey': 'InstanceType', 'DefaultValue': 't3.nano'},
        ]
        previous = {'ParentVPCStack': 'vpc', 'InstanceType': 't3.micro'}

        assert build_parameters(template_parameters, previous) == [
            {'ParameterKey': 'ParentVPCStack', 'UsePreviousValue': True},
            {'ParameterKey': 'KeyName', 'ParameterValue': ''},
            {'ParameterKey': 'InstanceType', 'UsePreviousValue': True},
        ]

    def test_new_parameter_without_default(self):
        with pytest.raises(ChangeSetError, match='new parameter Required'):
            build_parameters([{'ParameterKey': 'Required'}], {})


class TestResourceAction:

    @pytest.mark.parametrize('replacement, expected', [
        ('True', 'Replace'),
        ('False', 'Modify'),
        ('Conditional', 'Replace (Conditional)'),
    ])
    def test_modify(self, replacement, expected):
        assert resource_action({'action': 'Modify', 'replacement': replacement}) == expected

    @pytest.mark.parametrize('action', ['Add', 'Remove', 'Dynamic'])
    def test_other_actions(self, action):
        assert resource_action({'action': action, 'replacement': None}) == action

    def test_unknown_replacement(self):
        with pytest.raises(ChangeSetError, match='unexpected actionModifyReplacement Maybe'):
            resource_action({'action': 'Modify', 'replacement': 'Maybe'})


def test_format_change():
    change = {
        'Type': 'Resource',
        'ResourceChange': {
            'Action': 'Modify',
            'Replacement': 'False',
            'ResourceType': 'AWS::EC2::VPC',
            'LogicalResourceId': 'VPC',
            'PhysicalResourceId': 'vpc-123',
        }
    }
    assert format_change(change) == {
        'action': 'Modify',
        'replacement': 'False',
        'resourceType': 'AWS::EC2::VPC',
        'logicalId': 'VPC',
        'physicalId': 'vpc-123',
    }


class TestCreateChangeSet:

    def test_created(self, manager, cf_client, releases, make_stack):
        cf_client.describe_change_set.side_effect = [
            {
                'Status': 'CREATE_COMPLETE',
                'Changes': [{'ResourceChange': {'Action': 'Add', 'ResourceType': 'AWS::SNS::Topic', 'LogicalResourceId': 'Topic'}}],
                'NextToken': 'page-2',
            },
            {
                'Status': 'CREATE_COMPLETE',
                'Changes': [{'ResourceChange': {'Action': 'Remove', 'ResourceType': 'AWS::SQS::Queue', 'LogicalResourceId': 'Queue'}}],
            },
        ]
        stack = make_stack('vpc', parameters={'ParentVPCStack': 'vpc'})

        change_set = manager.create_change_set(stack)

        releases.template_url.assert_called_once_with('vpc/vpc-2azs', '13.0.0')
        kwargs = cf_client.create_change_set.call_args.kwargs
        assert kwargs['ChangeSetName'].startswith('stackforge-')
        assert len(kwargs['ChangeSetName']) == len('stackforge-') + 32
        assert kwargs['StackName'] == 'vpc'
        assert kwargs['ChangeSetType'] == 'UPDATE'
        assert kwargs['Description'] == f"stackforge {__version__}"
        assert kwargs['TemplateURL'] == TEMPLATE_URL
        assert kwargs['Capabilities'] == ['CAPABILITY_IAM']
        assert kwargs['Parameters'] == [
            {'ParameterKey': 'ParentVPCStack', 'UsePreviousValue': True},
            {'ParameterKey': 'NewParameter', 'ParameterValue': 'default'},
        ]
        cf_client.get_waiter.assert_called_once_with('change_set_create_complete')

        assert change_set['id'] == 'arn:change-set'
        assert change_set['name'] == kwargs['ChangeSetName']
        assert change_set['status'] == 'CREATE_COMPLETE'
        assert [change['action'] for change in change_set['changes']] == ['Add', 'Remove']

    def test_no_changes(self, manager, cf_client, make_stack):
        cf_client.get_waiter.return_value.wait.side_effect = waiter_error()
        cf_client.describe_change_set.return_value = {
            'Status': 'FAILED',
            'StatusReason': "The submitted information didn't contain changes. Submit different information to create a change set.",
        }

        change_set = manager.create_change_set(make_stack('vpc', parameters={'ParentVPCStack': 'vpc'}))

        assert change_set['status'] == 'NO_CHANGES'
        assert change_set['changes'] == []

    def test_failed(self, manager, cf_client, make_stack):
        cf_client.get_waiter.return_value.wait.side_effect = waiter_error()
        cf_client.describe_change_set.return_value = {'Status': 'FAILED', 'StatusReason': 'Template error'}

        with pytest.raises(ChangeSetError, match='Change set creation failed: Template error'):
            manager.create_change_set(make_stack('vpc', parameters={'ParentVPCStack': 'vpc'}))

    def test_create_rejected(self, manager, cf_client, make_stack):
        cf_client.create_change_set.side_effect = client_error('CreateChangeSet', 'Stack is in UPDATE_IN_PROGRESS state')

        with pytest.raises(ChangeSetError, match='UPDATE_IN_PROGRESS'):
            manager.create_change_set(make_stack('vpc', parameters={'ParentVPCStack': 'vpc'}))

    def test_template_summary_rejected(self, manager, cf_client, make_stack):
        cf_client.get_template_summary.side_effect = client_error('GetTemplateSummary')

        with pytest.raises(ChangeSetError, match='Failed to get template summary: Access Denied'):
            manager.create_change_set(make_stack('vpc', parameters={'ParentVPCStack': 'vpc'}))
        cf_client.create_change_set.assert_not_called()


def test_execute_and_delete(manager, cf_client):
    manager.execute_change_set('vpc', 'stackforge-1')
    cf_client.execute_change_set.assert_called_once_with(ChangeSetName='stackforge-1', StackName='vpc')

    manager.delete_change_set('vpc', 'stackforge-1')
    cf_client.delete_change_set.assert_called_once_with(ChangeSetName='stackforge-1', StackName='vpc')


def test_execute_rejected(manager, cf_client):
    cf_client.execute_change_set.side_effect = client_error('ExecuteChangeSet')

    with pytest.raises(ChangeSetError, match='Failed to execute change set: Access Denied'):
        manager.execute_change_set('vpc', 'stackforge-1')
