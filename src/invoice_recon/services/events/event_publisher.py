"""
Azure Service Bus event publishing for invoice reconciliation results.

Enables downstream systems to react to reconciled invoices:
- Accounting systems can flag invoices with no matching sale
- Audit systems can track every reconciliation verdict
- Export jobs can collect results without polling the API
"""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, UTC
from typing import Optional
from dataclasses import dataclass, asdict
from loguru import logger
from ...models.invoice import InvoiceItem


@dataclass
class InvoiceReconciledEvent:
    """
    Event published when an invoice reaches a terminal state (done or error).

    Dates are ISO strings so the event serializes to JSON as-is.
    """

    item_id: str
    source_name: str
    status: str
    matched: Optional[bool] = None
    product: Optional[str] = None
    amount: Optional[float] = None
    price: Optional[float] = None
    date: Optional[str] = None
    ledger_product: Optional[str] = None
    error: Optional[str] = None
    event_type: str = "InvoiceReconciled"
    timestamp: Optional[str] = None

    def __post_init__(self):
        """Set timestamp if not provided"""
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    @classmethod
    def from_item(cls, item: InvoiceItem) -> "InvoiceReconciledEvent":
        """Build the event from a terminal item snapshot"""
        candidate = item.candidate
        return cls(
            item_id=item.id,
            source_name=item.source_name,
            status=item.status.value,
            matched=item.matched,
            product=candidate.product if candidate else None,
            amount=candidate.amount if candidate else None,
            price=candidate.price if candidate else None,
            date=candidate.date.isoformat() if candidate and candidate.date else None,
            ledger_product=item.matched_entry.product if item.matched_entry else None,
            error=item.error,
        )

    def to_dict(self) -> dict:
        """
        Convert event to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for Service Bus message body
        """
        return asdict(self)

    def to_json(self) -> str:
        """
        Convert event to JSON string.

        Returns:
            JSON string representation
        """
        return json.dumps(self.to_dict(), ensure_ascii=False)


class EventPublisher:
    """
    Publishes events to an Azure Service Bus queue.

    Usage:
        from azure.servicebus import ServiceBusClient
        client = ServiceBusClient.from_connection_string(conn_str)
        sender = client.get_queue_sender(queue_name="invoice-reconciliation-events")
        publisher = EventPublisher(service_bus_sender=sender)

        # Disabled mode (no Service Bus configured)
        publisher = EventPublisher(service_bus_sender=None)
    """

    def __init__(
        self,
        service_bus_sender: Optional[object] = None,
        entity_name: str = "invoice-reconciliation-events"
    ):
        """
        Initialize event publisher.

        Args:
            service_bus_sender: Azure Service Bus sender (ServiceBusSender) or None to disable
            entity_name: Service Bus queue name
        """
        self.service_bus_sender = service_bus_sender
        self.entity_name = entity_name
        # One worker: sends leave the event loop but stay in order, and the
        # sender is never used from two threads at once
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="event-publisher")

    @property
    def enabled(self) -> bool:
        return self.service_bus_sender is not None

    def publish_invoice_reconciled(self, event: InvoiceReconciledEvent) -> None:
        """
        Publish an invoice reconciled event to Service Bus.

        Note:
            If service_bus_sender is None, this is a no-op (disabled mode).
        """
        if self.service_bus_sender is None:
            return

        from azure.servicebus import ServiceBusMessage

        message = ServiceBusMessage(event.to_json(), content_type="application/json")
        self.service_bus_sender.send_messages(message)

    def __call__(self, item: InvoiceItem) -> None:
        """
        Pipeline listener: publish terminal snapshots, ignore the rest.

        Sending happens on the publisher's worker thread so a slow Service Bus
        round trip never stalls the pipeline; call flush() to wait for it.
        """
        if not self.enabled or not item.status.is_terminal:
            return
        self._executor.submit(self._publish_item, item)

    def _publish_item(self, item: InvoiceItem) -> None:
        try:
            self.publish_invoice_reconciled(InvoiceReconciledEvent.from_item(item))
        except Exception as e:
            # Don't fail reconciliation if event publishing fails
            logger.warning("Failed to publish event", item_id=item.id, error=str(e))

    def flush(self) -> None:
        """Block until every event handed to the listener has been sent (or failed)"""
        self._executor.submit(lambda: None).result()


_default_publisher: Optional[EventPublisher] = None


def get_event_publisher() -> EventPublisher:
    """
    Get the default event publisher instance.

    Connects to Service Bus on first use when SERVICE_BUS_CONNECTION_STRING is
    set, otherwise returns a disabled publisher.
    """
    global _default_publisher
    if _default_publisher is None:
        from ...core.config import settings

        sender = None
        if settings.service_bus_connection_string:
            from azure.servicebus import ServiceBusClient

            client = ServiceBusClient.from_connection_string(settings.service_bus_connection_string)
            sender = client.get_queue_sender(queue_name=settings.service_bus_queue_name)
            logger.info("Publishing reconciliation events to Service Bus", queue=settings.service_bus_queue_name)

        _default_publisher = EventPublisher(service_bus_sender=sender, entity_name=settings.service_bus_queue_name)
    return _default_publisher
