"""
CloudFormation Change Set Module

Creates, previews, executes and deletes UPDATE change sets that move a stack
to the latest released version of its template.
"""

import secrets
from typing import Dict, List, Optional

from botocore.exceptions import ClientError, WaiterError

from . import __version__, log
from .clients import ClientCache
from .errors import StackForgeError
from .models import StackDescriptor
from .template_releases import TemplateReleases

NO_CHANGES_REASONS = ("didn't contain changes", "No updates")


class ChangeSetError(StackForgeError):
    """Raised when a change set can not be created, executed or interpreted"""
    pass


def build_parameters(template_parameters: List[Dict], previous_parameters: Dict[str, str]) -> List[Dict]:
    """
    Map the parameters of the new template onto the stack's current parameters.

    Args:
        template_parameters: Parameters from get_template_summary
        previous_parameters: Current stack parameters (key -> value)

    Returns:
        Parameters for create_change_set

    Raises:
        ChangeSetError: If the new template adds a parameter without a default value
    """
    cf_parameters = []
    for parameter in template_parameters:
        key = parameter['ParameterKey']
        if key in previous_parameters:
            cf_parameters.append({'ParameterKey': key, 'UsePreviousValue': True})
        elif 'DefaultValue' in parameter:
            cf_parameters.append({'ParameterKey': key, 'ParameterValue': parameter['DefaultValue']})
        else:
            # TODO prompt for the value of new parameters without a default
            raise ChangeSetError(f"not yet implemented: update contains new parameter {key} (without default)")
    return cf_parameters


def format_change(change: Dict) -> Dict:
    resource_change = change.get('ResourceChange', {})
    return {
        'action': resource_change.get('Action'),  # Add, Modify, Remove, Dynamic
        'replacement': resource_change.get('Replacement'),  # True, False, Conditional
        'resourceType': resource_change.get('ResourceType'),
        'logicalId': resource_change.get('LogicalResourceId'),
        'physicalId': resource_change.get('PhysicalResourceId')
    }


def resource_action(change: Dict) -> str:
    """
    Human readable action of a formatted change.

    Raises:
        ChangeSetError: If a Modify change has an unknown replacement value
    """
    if change['action'] != 'Modify':
        return change['action']

    replacement = change['replacement']
    if replacement == 'True':
        return 'Replace'
    elif replacement == 'False':
        return 'Modify'
    elif replacement == 'Conditional':
        return 'Replace (Conditional)'
    raise ChangeSetError(f"unexpected actionModifyReplacement {replacement}")


class ChangeSetManager:
    """
    Change set handling for the stacks of one region.
    """

    def __init__(self, region: str, clients: Optional[ClientCache] = None, releases: Optional[TemplateReleases] = None):
        self.region = region
        self.clients = clients or ClientCache()
        self.releases = releases or TemplateReleases(clients=self.clients)
        self.cf_client = self.clients.client('cloudformation', region)

    def fetch_template_summary(self, template_url: str) -> Dict:
        try:
            return self.cf_client.get_template_summary(TemplateURL=template_url)
        except ClientError as e:
            raise ChangeSetError(f"Failed to get template summary: {e.response['Error']['Message']}")

    def describe_changes(self, stack_name: str, change_set_name: str) -> Dict:
        """Describe a change set, following NextToken until all changes are collected."""
        response = self.cf_client.describe_change_set(ChangeSetName=change_set_name, StackName=stack_name)
        changes = list(response.get('Changes', []))
        while response.get('NextToken'):
            response = self.cf_client.describe_change_set(
                ChangeSetName=change_set_name,
                StackName=stack_name,
                NextToken=response['NextToken']
            )
            changes.extend(response.get('Changes', []))
        return {**response, 'Changes': changes}

    def create_change_set(self, stack: StackDescriptor) -> Dict:
        """
        Create a change set that updates a stack to its latest template release.

        Args:
            stack: Stack with an available update

        Returns:
            Dictionary with change set information:
            {
                'id': str,
                'name': str,
                'status': str,  # CREATE_COMPLETE or NO_CHANGES
                'changes': list
            }
        """
        change_set_name = f"stackforge-{secrets.token_hex(16)}"
        template_url = self.releases.template_url(stack.template_id, stack.template_latest_version)
        template = self.fetch_template_summary(template_url)
        parameters = build_parameters(template.get('Parameters', []), stack.parameters)

        try:
            response = self.cf_client.create_change_set(
                ChangeSetName=change_set_name,
                StackName=stack.name,
                ChangeSetType='UPDATE',
                Description=f"stackforge {__version__}",
                Parameters=parameters,
                TemplateURL=template_url,
                Capabilities=['CAPABILITY_IAM']
            )
        except ClientError as e:
            raise ChangeSetError(f"Failed to create change set: {e.response['Error']['Message']}")

        change_set_id = response['Id']
        log.info(f"change set {change_set_name} created for stack {stack.name} in {self.region}")

        waiter = self.cf_client.get_waiter('change_set_create_complete')
        try:
            waiter.wait(
                ChangeSetName=change_set_name,
                StackName=stack.name,
                WaiterConfig={'Delay': 5, 'MaxAttempts': 120}
            )
        except WaiterError:
            # Check if it failed because there are no changes
            info = self.cf_client.describe_change_set(ChangeSetName=change_set_name, StackName=stack.name)
            status_reason = info.get('StatusReason', '')
            if info['Status'] == 'FAILED' and any(reason in status_reason for reason in NO_CHANGES_REASONS):
                log.info(f"change set {change_set_name} for stack {stack.name} contains no changes")
                return {
                    'id': change_set_id,
                    'name': change_set_name,
                    'status': 'NO_CHANGES',
                    'changes': []
                }
            raise ChangeSetError(f"Change set creation failed: {status_reason}")

        info = self.describe_changes(stack.name, change_set_name)
        return {
            'id': change_set_id,
            'name': change_set_name,
            'status': info['Status'],
            'changes': [format_change(change) for change in info['Changes']]
        }

    def execute_change_set(self, stack_name: str, change_set_name: str):
        try:
            self.cf_client.execute_change_set(ChangeSetName=change_set_name, StackName=stack_name)
            log.info(f"change set {change_set_name} executed for stack {stack_name} in {self.region}")
        except ClientError as e:
            raise ChangeSetError(f"Failed to execute change set: {e.response['Error']['Message']}")

    def delete_change_set(self, stack_name: str, change_set_name: str):
        try:
            self.cf_client.delete_change_set(ChangeSetName=change_set_name, StackName=stack_name)
            log.info(f"change set {change_set_name} deleted for stack {stack_name} in {self.region}")
        except ClientError as e:
            raise ChangeSetError(f"Failed to delete change set: {e.response['Error']['Message']}")
