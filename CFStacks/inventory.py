"""
Stack Inventory

Discovers stacks created from released templates across regions and
enriches them with version, update and drift information.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from . import log
from .clients import ClientCache
from .config import STACKFORGE_CONFIG
from .models import StackDescriptor
from .stack_graph import extract_parent_references
from .template_releases import TemplateReleaseError, TemplateReleases, is_update_available

UNRELEASED_VERSION = '__VERSION__'

# failures that only make enrichment data unavailable
ENRICHMENT_ERRORS = (ClientError, BotoCoreError, requests.RequestException, TemplateReleaseError)


def _output_value(stack: Dict, key: str) -> Optional[str]:
    for output in stack.get('Outputs', []):
        if output.get('OutputKey') == key:
            return output.get('OutputValue')
    return None


def is_template_stack(stack: Dict) -> bool:
    """Stacks created from a released template expose a TemplateID output like vpc/vpc-2azs."""
    template_id = _output_value(stack, 'TemplateID')
    return template_id is not None and '/' in template_id


def extract_template_id(stack: Dict) -> Optional[str]:
    template_id = _output_value(stack, 'TemplateID')
    if template_id is None:
        log.warning(f"can not extract template id in {stack.get('Region')} for stack {stack['StackName']}", stack)
    return template_id


def extract_template_version(template_id: str, stack: Dict) -> Optional[str]:
    version = _output_value(stack, 'TemplateVersion')
    if version is None or version == UNRELEASED_VERSION:
        log.warning(
            f"can not extract template version in {stack.get('Region')} for stack {stack['StackName']} ({template_id})",
            stack
        )
        return None
    return version


class StackInventory:
    """
    Fetches deployed stacks from CloudFormation.

    All descriptors are fully materialized before they are returned, so the
    dependency graph can be built afterwards in a single thread.
    """

    def __init__(
        self,
        clients: Optional[ClientCache] = None,
        releases: Optional[TemplateReleases] = None,
        max_workers: Optional[int] = None
    ):
        self.clients = clients or ClientCache()
        self.releases = releases or TemplateReleases(clients=self.clients)
        self.max_workers = max_workers or STACKFORGE_CONFIG['max_workers']

    def fetch_regions(self, region: Optional[str] = None) -> List[str]:
        if region is not None:
            return [region]
        ec2_client = self.clients.client('ec2', STACKFORGE_CONFIG['default_region'])
        response = ec2_client.describe_regions()
        return [r['RegionName'] for r in response['Regions']]

    def fetch_stacks(self, region: str) -> List[Dict]:
        """
        Fetch all stacks of a region.

        Args:
            region: AWS region

        Returns:
            Raw stack dictionaries with Region and AccountId added from the stack ARN
        """
        cf_client = self.clients.client('cloudformation', region)
        paginator = cf_client.get_paginator('describe_stacks')

        stacks = []
        for page in paginator.paginate():
            for stack in page['Stacks']:
                # arn:aws:cloudformation:<region>:<account>:stack/<name>/<uuid>
                arn = stack['StackId'].split(':')
                stacks.append({**stack, 'Region': arn[3], 'AccountId': arn[4]})
        return stacks

    def fetch_latest_version(self, stack: Dict, template_id: str, template_version: Optional[str]) -> Optional[str]:
        try:
            return self.releases.fetch_latest_version()
        except ENRICHMENT_ERRORS as e:
            log.warning(
                f"can not get latest template version in {stack['Region']} for stack {stack['StackName']} "
                f"({template_id} v{template_version})",
                e
            )
            return None

    def detect_drift(self, stack: Dict, template_id: str, template_version: Optional[str]) -> Optional[bool]:
        try:
            return self.releases.detect_drift(stack['Region'], stack['StackName'], template_id, template_version)
        except ENRICHMENT_ERRORS as e:
            log.warning(
                f"can not detect template drift in {stack['Region']} for stack {stack['StackName']} "
                f"({template_id} v{template_version})",
                e
            )
            return None

    def enrich_stack(self, stack: Dict) -> StackDescriptor:
        template_id = extract_template_id(stack)
        template_version = extract_template_version(template_id, stack)
        latest_version = self.fetch_latest_version(stack, template_id, template_version)
        drift = self.detect_drift(stack, template_id, template_version)

        parameters = {
            parameter['ParameterKey']: parameter.get('ParameterValue', '')
            for parameter in stack.get('Parameters', [])
        }

        return StackDescriptor(
            account_id=stack['AccountId'],
            region=stack['Region'],
            name=stack['StackName'],
            parameters=parameters,
            parent_references=extract_parent_references(parameters),
            template_id=template_id,
            template_version=template_version,
            template_latest_version=latest_version,
            template_drift_detected=drift,
            update_available=is_update_available(latest_version, template_version)
        )

    def fetch_all_stacks(self, region: Optional[str] = None) -> List[StackDescriptor]:
        """
        Fetch and enrich all template stacks of one or all regions.

        Args:
            region: Restrict to a single region (default: every enabled region)

        Returns:
            Stack descriptors in region order, then in CloudFormation order
        """
        regions = self.fetch_regions(region)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            stack_lists = list(executor.map(self.fetch_stacks, regions))
            stacks = [
                stack
                for stack_list in stack_lists
                for stack in stack_list
                if is_template_stack(stack)
            ]
            return list(executor.map(self.enrich_stack, stacks))
