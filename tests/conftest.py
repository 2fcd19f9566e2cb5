"""
Pytest configuration and shared fixtures.

Registers the integration marker (tests against real Azure resources, skipped
unless --run-integration is given) and provides a sample ledger plus an API
client wired to a fresh pipeline per test.
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from invoice_recon.api.main import app
from invoice_recon.models.ledger import LedgerEntry
from invoice_recon.services.pipeline import ReconciliationPipeline, get_pipeline
from invoice_recon.services.recognition import MockRecognitionEngine


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real Azure resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def ledger():
    """Small bilingual sales ledger"""
    return [
        LedgerEntry(date=date(2024, 5, 1), product="Olive Oil 1L", qty=3, price=25.0, revenue=75.0, region="Riyadh"),
        LedgerEntry(date=date(2024, 5, 2), product="زيت زيتون", qty=2, price=30.0, revenue=60.0, region="Jeddah"),
        LedgerEntry(date=None, product="Green Tea", qty=10, price=12.5, revenue=125.0, region="Dammam"),
    ]


@pytest.fixture
def pipeline():
    """Pipeline with the mock engine (uploaded bytes are read as text)"""
    return ReconciliationPipeline(engine=MockRecognitionEngine())


@pytest.fixture
def client(pipeline):
    """API client whose endpoints use the test's own pipeline"""
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_pipeline, None)
