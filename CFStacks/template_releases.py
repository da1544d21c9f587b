"""
Template Release Lookup

Finds the latest released template version, downloads released templates
and detects drift between a stack's live template and its release.
"""

import hashlib
import json
import re
import threading
import time
from typing import Dict, Optional

import requests
from packaging.version import InvalidVersion, Version

from . import log
from .clients import ClientCache
from .config import STACKFORGE_CONFIG
from .errors import StackForgeError

RELEASE_TITLE_PATTERN = re.compile(r'<title>(v[0-9.]*)</title>', re.IGNORECASE)
NON_ASCII_PATTERN = re.compile(r'[^\x00-\x7F]')


class TemplateReleaseError(StackForgeError):
    """Raised when release information can not be downloaded or parsed"""
    pass


def is_update_available(latest_version: Optional[str], template_version: Optional[str]) -> Optional[bool]:
    """
    Compare a stack's template version with the latest release.

    Returns:
        True/False, or None for unreleased templates and unparseable versions
    """
    if template_version is None or latest_version is None:
        return None
    try:
        return Version(latest_version) > Version(template_version)
    except InvalidVersion as e:
        log.warning(f"can not compare latest template version (v{latest_version}) with v{template_version}", e)
        return None


class TemplateReleases:
    """
    Access to the released template collection.
    Downloads are cached per URL for the lifetime of the object.
    """

    def __init__(self, clients: Optional[ClientCache] = None, http: Optional[requests.Session] = None):
        self.clients = clients or ClientCache()
        self.http = http or requests.Session()
        self.bucket = STACKFORGE_CONFIG['releases_bucket']
        self._cache: Dict[str, str] = {}
        self._download_lock = threading.Lock()

    def clear_cache(self):
        self._cache.clear()

    def template_url(self, template_id: str, version: str) -> str:
        return f"{STACKFORGE_CONFIG['template_url_prefix']}/v{version}/{template_id}.yaml"

    def download_file(self, url: str) -> str:
        """
        Download a text file over HTTP(S), retrying failed attempts.

        Args:
            url: File URL

        Returns:
            Response body

        Raises:
            TemplateReleaseError: If no attempt returned HTTP 200
        """
        with self._download_lock:
            if url not in self._cache:
                self._cache[url] = self._download(url)
            return self._cache[url]

    def _download(self, url: str) -> str:
        attempts = STACKFORGE_CONFIG['download_attempts']
        last_error = None
        for attempt in range(attempts):
            try:
                response = self.http.get(url, timeout=30)
                if response.status_code == 200:
                    return response.text
                last_error = f"200 expected, received {response.status_code}: {response.text}"
            except requests.RequestException as e:
                last_error = str(e)
            log.debug(f"download of {url} failed (attempt {attempt + 1}/{attempts}): {last_error}")
            if attempt < attempts - 1:
                time.sleep(STACKFORGE_CONFIG['download_retry_delay'])

        raise TemplateReleaseError(f"{url} {last_error}")

    def download_s3_file(self, bucket: str, key: str) -> str:
        url = f"s3://{bucket}/{key}"
        if url in self._cache:
            return self._cache[url]

        response = self.clients.client('s3').get_object(Bucket=bucket, Key=key)
        body = response['Body'].read().decode('utf-8')
        self._cache[url] = body
        return body

    def fetch_latest_version(self) -> str:
        """Latest release version from the releases feed, without the leading v."""
        body = self.download_file(STACKFORGE_CONFIG['releases_feed_url'])
        match = RELEASE_TITLE_PATTERN.search(body)
        if match is None:
            raise TemplateReleaseError("no release found in releases feed")
        return match.group(1).replace('v', '')

    def detect_drift(
        self,
        stack_region: str,
        stack_name: str,
        template_id: str,
        template_version: Optional[str]
    ) -> Optional[bool]:
        """
        Check whether a stack's live template differs from its released template.

        Args:
            stack_region: Region of the stack
            stack_name: Name of the stack
            template_id: Template id, e.g. vpc/vpc-2azs
            template_version: Released version the stack claims to use

        Returns:
            True if the templates differ, False if not, None for unreleased templates
        """
        if template_version is None:
            return None

        raw_template = self.download_s3_file(self.bucket, f"v{template_version}/{template_id}.yaml")
        cf_client = self.clients.client('cloudformation', stack_region)
        live_template = cf_client.get_template(StackName=stack_name)['TemplateBody']
        if not isinstance(live_template, str):
            # boto3 parses JSON bodies, released templates are YAML
            live_template = json.dumps(live_template)

        # CloudFormation replaces non-ascii chars with ?
        raw_md5 = hashlib.md5(NON_ASCII_PATTERN.sub('?', raw_template).encode('utf-8')).hexdigest()
        live_md5 = hashlib.md5(live_template.encode('utf-8')).hexdigest()
        return raw_md5 != live_md5
