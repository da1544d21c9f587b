"""
CloudFormation Event Tracker

Polls stack events while a change set is executed and publishes every new
event of the running operation until the stack reaches a terminal status.
"""

import time
from typing import Callable, Dict, List, Optional, Set

from botocore.exceptions import ClientError

from .clients import ClientCache
from .config import STACKFORGE_CONFIG
from .errors import StackForgeError

STACK_RESOURCE_TYPE = 'AWS::CloudFormation::Stack'


class StackOperationError(StackForgeError):
    """Raised when a stack operation fails or does not finish in time"""
    pass


def _is_stack_event(event: Dict, status: str) -> bool:
    return event.get('ResourceStatus') == status and event.get('ResourceType') == STACK_RESOURCE_TYPE


class StackEventTracker:
    """
    Tracks the events of one stack operation (e.g. UPDATE).
    """

    def __init__(
        self,
        stack_name: str,
        region: str,
        clients: Optional[ClientCache] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None
    ):
        """
        Initialize event tracker for a specific stack.

        Args:
            stack_name: CloudFormation stack name to track
            region: AWS region of the stack
            clients: Shared boto3 client cache
            timeout: Seconds to wait for the operation (default: STACKFORGE_EVENT_TIMEOUT)
            poll_interval: Seconds between polls (default: STACKFORGE_EVENT_POLL_INTERVAL)
        """
        self.stack_name = stack_name
        self.region = region
        self.cf_client = (clients or ClientCache()).client('cloudformation', region)
        self.timeout = STACKFORGE_CONFIG['event_timeout_seconds'] if timeout is None else timeout
        self.poll_interval = STACKFORGE_CONFIG['event_poll_seconds'] if poll_interval is None else poll_interval

        # Track which events we've already published (by event ID)
        self.seen_event_ids: Set[str] = set()

        # Newest event before the tracked operation started
        self.since_event_id: Optional[str] = None

    def fetch_all_events(self) -> List[Dict]:
        """All stack events, newest first."""
        try:
            paginator = self.cf_client.get_paginator('describe_stack_events')
            events = []
            for page in paginator.paginate(StackName=self.stack_name):
                events.extend(page['StackEvents'])
            return events
        except ClientError as e:
            raise StackOperationError(f"Failed to get stack events: {e.response['Error']['Message']}")

    def mark(self):
        """Remember the newest existing event so older operations are ignored by tail()."""
        events = self.fetch_all_events()
        self.since_event_id = events[0]['EventId'] if events else None

    def _new_events(self, all_events: List[Dict]) -> List[Dict]:
        if self.since_event_id is None:
            return all_events
        for i, event in enumerate(all_events):
            if event['EventId'] == self.since_event_id:
                return all_events[:i]
        return all_events

    def _is_failure(self, event: Dict, operation: str) -> bool:
        if event.get('ResourceType') != STACK_RESOURCE_TYPE:
            return False
        status = event.get('ResourceStatus', '')
        return status == f"{operation}_FAILED" or status in (
            f"{operation}_ROLLBACK_COMPLETE",
            f"{operation}_ROLLBACK_FAILED"
        )

    def tail(self, operation: str, callback: Callable[[Dict], None]) -> List[Dict]:
        """
        Publish the events of a running stack operation until it completes.

        Args:
            operation: Operation prefix of the stack statuses, e.g. UPDATE
            callback: Called once per new event, oldest first

        Returns:
            The events of the completed operation, oldest first

        Raises:
            StackOperationError: If the operation failed or timed out
        """
        deadline = time.monotonic() + self.timeout

        while time.monotonic() < deadline:
            time.sleep(self.poll_interval)
            all_events = self._new_events(self.fetch_all_events())

            start_index = next(
                (i for i, event in enumerate(all_events) if _is_stack_event(event, f"{operation}_IN_PROGRESS")),
                None
            )
            if start_index is None:
                continue

            events = all_events[:start_index + 1]
            end_index = next(
                (i for i, event in enumerate(events) if _is_stack_event(event, f"{operation}_COMPLETE")),
                None
            )
            relevant_events = list(reversed(events[end_index or 0:]))

            for event in relevant_events:
                if event['EventId'] not in self.seen_event_ids:
                    self.seen_event_ids.add(event['EventId'])
                    callback(event)

            if end_index is not None:
                return relevant_events

            if self._is_failure(relevant_events[-1], operation):
                raise StackOperationError(f"stack {operation.lower()} failed")

        raise StackOperationError(f"stack {operation.lower()} timed out")
