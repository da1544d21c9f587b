"""Shared test fixtures for stackforge."""

import logging
from unittest.mock import MagicMock

import pytest

from CFStacks import log
from CFStacks.config import STACKFORGE_CONFIG
from CFStacks.models import StackDescriptor
from CFStacks.stack_graph import extract_parent_references


class FakeClients:
    """Stands in for ClientCache: one MagicMock per (service, region)."""

    def __init__(self):
        self.clients = {}

    def client(self, service, region=None):
        key = (service, region)
        if key not in self.clients:
            self.clients[key] = MagicMock(name=f"{service}:{region}")
        return self.clients[key]


@pytest.fixture(autouse=True)
def log_to_tmp(monkeypatch, tmp_path):
    """Write the log file into the test's tmp dir and detach handlers afterwards."""
    monkeypatch.setitem(STACKFORGE_CONFIG, 'log_file', str(tmp_path / 'stackforge.log'))
    monkeypatch.setitem(STACKFORGE_CONFIG, 'download_retry_delay', 0)
    yield
    for handler in list(log.logger.handlers):
        if isinstance(handler, logging.FileHandler):
            handler.close()
        log.logger.removeHandler(handler)


@pytest.fixture
def fake_clients():
    return FakeClients()


@pytest.fixture
def make_stack():
    """Factory for stack descriptors; parent references are derived from parameters."""
    def _make_stack(name, region='eu-west-1', account_id='111', parameters=None, **fields):
        parameters = parameters or {}
        values = {
            'template_id': 'vpc/vpc-2azs',
            'template_version': '12.0.0',
            'template_latest_version': '13.0.0',
            'template_drift_detected': False,
            'update_available': True,
        }
        values.update(fields)
        return StackDescriptor(
            account_id=account_id,
            region=region,
            name=name,
            parameters=parameters,
            parent_references=extract_parent_references(parameters),
            **values
        )
    return _make_stack
