"""
Integration tests for Azure Service Bus event publishing.

Run these tests with a real Service Bus namespace:
    pytest tests/test_service_bus_integration.py --run-integration

Requires environment variable:
    SERVICE_BUS_CONNECTION_STRING=Endpoint=sb://...

Note: Uses a Service Bus Queue named 'invoice-reconciliation-events'.
"""

import json
import os

import pytest
from invoice_recon.services.events.event_publisher import EventPublisher, InvoiceReconciledEvent

QUEUE_NAME = "invoice-reconciliation-events"


@pytest.fixture(scope="module", autouse=True)
def cleanup_queue_after_tests():
    """
    Cleanup fixture: Drains the queue after all integration tests complete.

    This prevents test message accumulation and ensures a clean state.
    """
    yield

    conn_str = os.getenv("SERVICE_BUS_CONNECTION_STRING")
    if not conn_str:
        return

    try:
        from azure.servicebus import ServiceBusClient

        with ServiceBusClient.from_connection_string(conn_str) as client:
            with client.get_queue_receiver(queue_name=QUEUE_NAME, max_wait_time=2) as receiver:
                message_count = 0
                for msg in receiver:
                    receiver.complete_message(msg)
                    message_count += 1

                if message_count > 0:
                    print(f"\n🧹 Cleanup: Removed {message_count} test message(s) from queue")
    except Exception as e:
        # Don't fail tests if cleanup fails
        print(f"\n⚠️  Cleanup warning: {e}")


@pytest.fixture
def conn_str():
    value = os.getenv("SERVICE_BUS_CONNECTION_STRING")
    if not value:
        pytest.skip("SERVICE_BUS_CONNECTION_STRING not set")
    return value


@pytest.mark.integration
def test_publish_to_real_service_bus_queue(conn_str):
    """
    Integration test: Publish one reconciliation event to a real queue.

    Setup:
        az servicebus queue create \
          --name invoice-reconciliation-events \
          --namespace-name <your-namespace> \
          --resource-group <your-rg>
    """
    from azure.servicebus import ServiceBusClient

    with ServiceBusClient.from_connection_string(conn_str) as client:
        with client.get_queue_sender(queue_name=QUEUE_NAME) as sender:
            publisher = EventPublisher(service_bus_sender=sender, entity_name=QUEUE_NAME)

            event = InvoiceReconciledEvent(
                item_id="integration-test-001",
                source_name="integration.jpg",
                status="done",
                matched=True,
                product="زيت زيتون",
                amount=60.0,
                price=30.0,
                date="2024-05-02",
                ledger_product="زيت زيتون",
            )
            publisher.publish_invoice_reconciled(event)

            print(f"\n✅ Successfully published event to Service Bus queue '{QUEUE_NAME}'")


@pytest.mark.integration
def test_receive_event_from_queue(conn_str):
    """
    Integration test: Receive and verify event structure from the queue.

    Note: This test may receive messages from previous test runs.
    """
    from azure.servicebus import ServiceBusClient

    with ServiceBusClient.from_connection_string(conn_str) as client:
        with client.get_queue_sender(queue_name=QUEUE_NAME) as sender:
            EventPublisher(service_bus_sender=sender, entity_name=QUEUE_NAME).publish_invoice_reconciled(
                InvoiceReconciledEvent(item_id="integration-test-002", source_name="blurry.jpg", status="error",
                                       error="unreadable scan")
            )

        with client.get_queue_receiver(queue_name=QUEUE_NAME, max_wait_time=10) as receiver:
            messages = receiver.receive_messages(max_message_count=1, max_wait_time=10)
            if not messages:
                pytest.fail("No messages received from queue - queue may be empty")

            msg = messages[0]
            data = json.loads(str(msg))

            assert data["event_type"] == "InvoiceReconciled"
            for key in ("item_id", "source_name", "status", "matched", "product", "amount", "timestamp"):
                assert key in data
            assert data["status"] in ("done", "error")

            receiver.complete_message(msg)
            print(f"\n✅ Received event: {data['source_name']} - {data['status']}")
