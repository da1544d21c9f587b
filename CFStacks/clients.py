"""
boto3 client cache.

Sessions are not thread safe, clients are. Clients are created once per
service and region under a lock and shared by worker threads.
"""

import threading
from typing import Dict, Optional, Tuple

import boto3


class ClientCache:

    def __init__(self, session: Optional[boto3.Session] = None):
        self.session = session or boto3.Session()
        self._clients: Dict[Tuple[str, Optional[str]], object] = {}
        self._lock = threading.Lock()

    def client(self, service: str, region: Optional[str] = None):
        key = (service, region)
        with self._lock:
            if key not in self._clients:
                self._clients[key] = self.session.client(service, region_name=region)
            return self._clients[key]
