"""
Update Orchestrator

Decides which stacks to update and in which order, asks for confirmation and
drives change set creation, preview, execution and event tailing.
"""

import re
import sys
from typing import Callable, Dict, List, Optional, TextIO, Tuple

from rich.console import Console

from . import log, table
from .change_sets import ChangeSetManager, resource_action
from .clients import ClientCache
from .errors import StackForgeError
from .event_tracker import StackEventTracker
from .graph import Graph
from .models import StackDescriptor
from .stack_graph import build_stack_graph

CHANGE_COLUMNS = [
    'Stack Account ID', 'Stack Region', 'Stack Name', 'Template ID', 'Template Version',
    'Resource Type', 'Resource Id', 'Resource Action'
]
EVENT_COLUMNS = ['Time', 'Status', 'Type', 'Logical ID', 'Status Reason']


class StackSelectionError(StackForgeError):
    pass


class NoUpdateAvailableError(StackForgeError):
    pass


class UpdateAbortedError(StackForgeError):
    pass


def update_order(graph: Graph) -> List[StackDescriptor]:
    """
    Stacks in safe update order: parents before the stacks that reference them.

    Each scope subgraph is sorted on its own; root level nodes come first.
    """
    stacks = [node.data for node in reversed(graph.sort())]
    for scope in graph.subgraphs():
        stacks.extend(update_order(scope))
    return stacks


def select_stacks(stacks: List[StackDescriptor], stack_name: str) -> List[StackDescriptor]:
    matches = [stack for stack in stacks if stack.name == stack_name]
    if not matches:
        raise StackSelectionError(f"no stack found with name {stack_name}")
    if len(matches) > 1:
        raise StackSelectionError(
            f"more then one stack found with name {stack_name}. "
            "Set the --region parameter to restrict to a single region."
        )
    return matches


def updateable_stacks(stacks: List[StackDescriptor]) -> List[StackDescriptor]:
    stacks = [stack for stack in stacks if stack.update_available is True]
    if not stacks:
        raise NoUpdateAvailableError("no update available")
    return stacks


def change_rows(stack: StackDescriptor, change_set: Dict) -> List[List[str]]:
    """Preview rows for one stack: the stack update itself, then every resource change."""
    rows = [[
        stack.account_id, stack.region, stack.name, stack.template_id,
        f"{stack.template_version} (updating to {stack.template_latest_version})",
        'AWS::CloudFormation::Stack', stack.name,
        'No changes' if change_set.get('status') == 'NO_CHANGES' else 'Update'
    ]]
    for change in change_set['changes']:
        rows.append([
            stack.account_id, stack.region, stack.name, stack.template_id, '',
            change['resourceType'], change['physicalId'], resource_action(change)
        ])
    return rows


def event_row(event: Dict) -> List:
    return [
        event.get('Timestamp'),
        event.get('ResourceStatus'),
        event.get('ResourceType'),
        event.get('LogicalResourceId'),
        event.get('ResourceStatusReason')
    ]


class UpdateOrchestrator:
    """
    Runs the update workflow for a set of stack descriptors.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        stdin: Optional[TextIO] = None,
        assume_yes: bool = False,
        clients: Optional[ClientCache] = None,
        change_set_manager: Callable[[str], ChangeSetManager] = None,
        event_tracker: Callable[[str, str], StackEventTracker] = None
    ):
        """
        Args:
            console: Output console
            stdin: Stream confirmations are read from
            assume_yes: Skip all confirmations
            clients: Shared boto3 client cache
            change_set_manager: Factory region -> ChangeSetManager
            event_tracker: Factory (stack name, region) -> StackEventTracker
        """
        self.console = console or Console()
        self.stdin = stdin or sys.stdin
        self.assume_yes = assume_yes
        self.clients = clients or ClientCache()
        self.change_set_manager = change_set_manager or (
            lambda region: ChangeSetManager(region, clients=self.clients)
        )
        self.event_tracker = event_tracker or (
            lambda stack_name, region: StackEventTracker(stack_name, region, clients=self.clients)
        )
        self._managers: Dict[str, ChangeSetManager] = {}

    def manager(self, region: str) -> ChangeSetManager:
        if region not in self._managers:
            self._managers[region] = self.change_set_manager(region)
        return self._managers[region]

    def confirm(self, question: str):
        """
        Ask a yes/no question.

        Raises:
            UpdateAbortedError: Unless the answer is y or yes
        """
        if self.assume_yes:
            return
        self.console.print(f"{question} [y/N]", markup=False)
        answer = re.sub(r'[^a-z]', '', self.stdin.readline().lower())
        if answer not in ('y', 'yes'):
            raise UpdateAbortedError("abort")

    def relevant_stacks(self, stacks: List[StackDescriptor], stack_name: Optional[str] = None) -> List[StackDescriptor]:
        if stack_name is not None:
            return select_stacks(stacks, stack_name)
        return update_order(build_stack_graph(stacks))

    def create_change_set(self, stack: StackDescriptor) -> Dict:
        self.console.print(f"→ Creating change set for {stack.name} in {stack.region}...")
        return self.manager(stack.region).create_change_set(stack)

    def delete_change_sets(self, stacks_and_change_sets: List[Tuple[StackDescriptor, Dict]]):
        """Delete change sets that will not be executed; failures are logged so the rest are still deleted."""
        for stack, change_set in stacks_and_change_sets:
            try:
                self.manager(stack.region).delete_change_set(stack.name, change_set['name'])
            except StackForgeError as e:
                self.console.print(f"✗ change set {change_set['name']} of {stack.name} in {stack.region} not deleted: {e}")
                log.error(f"can not delete change set {change_set['name']} of stack {stack.name} in {stack.region}", e)

    def execute(self, stacks_and_change_sets: List[Tuple[StackDescriptor, Dict]]):
        with table.LiveTable(self.console, EVENT_COLUMNS) as event_table:
            for stack, change_set in stacks_and_change_sets:
                manager = self.manager(stack.region)
                if change_set['status'] == 'NO_CHANGES':
                    manager.delete_change_set(stack.name, change_set['name'])
                    self.console.print(f"No changes for {stack.name} in {stack.region}, change set deleted")
                    continue
                tracker = self.event_tracker(stack.name, stack.region)
                tracker.mark()
                manager.execute_change_set(stack.name, change_set['name'])
                tracker.tail('UPDATE', lambda event: event_table.add_row(event_row(event)))
                log.info(f"stack {stack.name} in {stack.region} updated to {stack.template_latest_version}")

    def run(self, stacks: List[StackDescriptor], stack_name: Optional[str] = None):
        """
        Update stacks to their latest template release.

        Args:
            stacks: All known stack descriptors
            stack_name: Only update the stack with this name

        Raises:
            StackSelectionError: If stack_name does not match exactly one stack
            NoUpdateAvailableError: If no selected stack has an update
            UpdateAbortedError: If the operator declines a confirmation
            ChangeSetError: If a change set can not be created; created ones are deleted
            GraphError: If the stack dependencies can not be ordered
        """
        updateable = updateable_stacks(self.relevant_stacks(stacks, stack_name))

        for stack in updateable:
            if stack.template_drift_detected is True:
                self.confirm(
                    f"Stack {stack.name} in {stack.region} uses a modified template. "
                    "An update will override any modifications. Continue?"
                )

        stacks_and_change_sets = []
        try:
            for stack in updateable:
                stacks_and_change_sets.append((stack, self.create_change_set(stack)))

            rows = []
            for stack, change_set in stacks_and_change_sets:
                rows.extend(change_rows(stack, change_set))
            table.print_table(self.console, CHANGE_COLUMNS, rows)

            self.confirm("Apply changes?")
        except Exception:
            # nothing was executed yet, so no created change set is kept
            self.delete_change_sets(stacks_and_change_sets)
            raise
        self.execute(stacks_and_change_sets)
