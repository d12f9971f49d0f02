"""Shared fixtures for the salesflow test suite."""

from datetime import date

import pytest

from salesflow.config import Settings
from salesflow.models.common import ClientRef
from salesflow.models.delivery import Delivery
from salesflow.models.invoice import Invoice
from salesflow.models.line import InvoiceLine, LineItem
from salesflow.models.order import Order
from salesflow.models.quote import Quote
from salesflow.services.workflow_service import WorkflowService
from salesflow.storage.document_store import InMemoryDocumentStore

ACME = ClientRef(code="900123456")
GLOBEX = ClientRef(code="800555111")


def line(ref, qty, price=10.0, discount=0.0, tax=0.0, **extra):
    return LineItem(product_ref=ref, quantity=qty, unit_price=price, discount_percent=discount, tax_percent=tax, **extra)


def invoice_line(ref, qty, source, price=10.0, tax=0.0):
    return InvoiceLine(product_ref=ref, quantity=qty, unit_price=price, tax_percent=tax, source_delivery_id=source)


def order(*lines, status="CONFIRMED", client=ACME, **kw):
    return Order(client_ref=client, status=status, lines=list(lines), **kw)


def delivery(order_obj, *lines, status="DELIVERED", on=None, client=None, **kw):
    return Delivery(
        client_ref=client or order_obj.client_ref,
        order_id=order_obj.id if order_obj is not None else None,
        status=status,
        lines=list(lines),
        date=on or date(2024, 3, 1),
        **kw,
    )


def accepted_invoice(*lines, client=ACME):
    return Invoice(
        client_ref=client,
        status="ACCEPTED",
        lines=list(lines),
        source_delivery_ids=sorted({ln.source_delivery_id for ln in lines if ln.source_delivery_id}),
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def workflow(store):
    return WorkflowService(store, settings=Settings(), persist_numbering=False)


@pytest.fixture
def sent_quote(workflow):
    """Quote with three lines, already sent to the client."""
    q = Quote(
        client_ref=ACME,
        number="COT-0042",
        valid_until=date(2024, 6, 30),
        lines=[
            line("SKU1", 100, price=12.5, discount=10, tax=19),
            line("SKU2", 20, price=40.0, tax=19),
            line("SKU3", 5, price=99.0, discount=5, tax=5),
        ],
    )
    created = workflow.quotes.create_quote(q).value
    return workflow.quotes.send_quote(created.id)
