"""
Tests for Service Bus event publishing.

Verifies that reconciliation results are published to Azure Service Bus
for downstream processing, integration with other systems, and audit trails.
"""

import asyncio
import json
import threading
from datetime import date

import pytest
from unittest.mock import Mock
from invoice_recon.models.invoice import CandidateRecord, InvoiceItem, ItemStatus
from invoice_recon.models.ledger import LedgerEntry
from invoice_recon.services.events.event_publisher import EventPublisher, InvoiceReconciledEvent
from invoice_recon.services.pipeline import ReconciliationPipeline
from invoice_recon.services.recognition import MockRecognitionEngine


@pytest.fixture
def mock_service_bus_sender():
    """Create a mock Service Bus sender matching Azure SDK interface"""
    return Mock()


@pytest.fixture
def event_publisher(mock_service_bus_sender):
    """Create EventPublisher with mocked Service Bus sender"""
    return EventPublisher(service_bus_sender=mock_service_bus_sender)


@pytest.fixture
def done_item():
    return InvoiceItem(
        id="item-1",
        source_name="inv-001.jpg",
        status=ItemStatus.DONE,
        progress=100,
        raw_text="Product\nOlive Oil\nTotal: 75",
        candidate=CandidateRecord(date=date(2024, 5, 1), amount=75, price=25, product="Olive Oil"),
        matched=True,
        matched_entry=LedgerEntry(product="Olive Oil 1L", price=25, revenue=75),
    )


def test_event_from_done_item(done_item):
    event = InvoiceReconciledEvent.from_item(done_item)

    assert event.item_id == "item-1"
    assert event.source_name == "inv-001.jpg"
    assert event.status == "done"
    assert event.matched is True
    assert event.product == "Olive Oil"
    assert event.amount == 75
    assert event.price == 25
    assert event.date == "2024-05-01"
    assert event.ledger_product == "Olive Oil 1L"
    assert event.error is None
    assert event.event_type == "InvoiceReconciled"
    assert event.timestamp is not None


def test_event_from_error_item():
    item = InvoiceItem(id="item-2", source_name="blurry.jpg", status=ItemStatus.ERROR, error="unreadable scan")
    event = InvoiceReconciledEvent.from_item(item)

    assert event.status == "error"
    assert event.matched is None
    assert event.product is None
    assert event.date is None
    assert event.error == "unreadable scan"


def test_event_serializes_to_json(done_item):
    data = json.loads(InvoiceReconciledEvent.from_item(done_item).to_json())

    assert data["item_id"] == "item-1"
    assert data["matched"] is True
    assert data["event_type"] == "InvoiceReconciled"
    # Timestamp should be ISO format
    assert "T" in data["timestamp"]


def test_json_keeps_arabic_text_readable():
    event = InvoiceReconciledEvent(item_id="x", source_name="a.jpg", status="done", product="زيت زيتون")
    assert "زيت زيتون" in event.to_json()


def test_publish_invoice_reconciled_event(event_publisher, mock_service_bus_sender, done_item):
    event_publisher.publish_invoice_reconciled(InvoiceReconciledEvent.from_item(done_item))

    assert mock_service_bus_sender.send_messages.called
    message = mock_service_bus_sender.send_messages.call_args[0][0]
    assert "item-1" in str(message)
    assert "InvoiceReconciled" in str(message)


def test_publish_with_null_service_bus_sender(done_item):
    """Test that publisher gracefully handles None sender (disabled mode)"""
    publisher = EventPublisher(service_bus_sender=None)
    assert publisher.enabled is False

    # Should not raise an error
    publisher.publish_invoice_reconciled(InvoiceReconciledEvent.from_item(done_item))
    publisher(done_item)


def test_listener_publishes_only_terminal_snapshots(event_publisher, mock_service_bus_sender, done_item):
    event_publisher(done_item.model_copy(update={"status": ItemStatus.PROCESSING}))
    event_publisher(done_item.model_copy(update={"status": ItemStatus.QUEUED}))
    event_publisher.flush()
    assert mock_service_bus_sender.send_messages.call_count == 0

    event_publisher(done_item)
    event_publisher.flush()
    assert mock_service_bus_sender.send_messages.call_count == 1


def test_listener_swallows_send_failures(event_publisher, mock_service_bus_sender, done_item):
    mock_service_bus_sender.send_messages.side_effect = RuntimeError("Service Bus unavailable")

    # Should not raise an error
    event_publisher(done_item)
    event_publisher.flush()
    assert mock_service_bus_sender.send_messages.call_count == 1


def test_listener_does_not_wait_for_slow_send(event_publisher, mock_service_bus_sender, done_item):
    """A send stuck on the network must not hold up the pipeline calling the listener"""
    unblock = threading.Event()
    mock_service_bus_sender.send_messages.side_effect = lambda message: unblock.wait(5)

    event_publisher(done_item)
    event_publisher(done_item.model_copy(update={"id": "item-2"}))
    # Both calls returned while the first send is still blocked
    assert mock_service_bus_sender.send_messages.call_count <= 1

    unblock.set()
    event_publisher.flush()
    assert mock_service_bus_sender.send_messages.call_count == 2


def test_pipeline_publishes_one_event_per_finished_item(event_publisher, mock_service_bus_sender, ledger):
    pipeline = ReconciliationPipeline(engine=MockRecognitionEngine())
    pipeline.subscribe(event_publisher)

    asyncio.run(pipeline.process_images(
        [("ok.jpg", "Product\nGreen Tea".encode()), ("empty.jpg", b"")],
        ledger,
    ))
    event_publisher.flush()

    assert mock_service_bus_sender.send_messages.call_count == 2
    bodies = [str(call.args[0]) for call in mock_service_bus_sender.send_messages.call_args_list]
    assert '"status": "done"' in bodies[0]
    assert '"status": "error"' in bodies[1]


def test_publisher_can_use_entity_name():
    """Test that publisher can be configured with a queue name"""
    publisher = EventPublisher(service_bus_sender=Mock(), entity_name="invoice-reconciliation-events")
    assert publisher.entity_name == "invoice-reconciliation-events"
