"""ORM models for the stock kernel."""

from stock_kernel.models.approval import Approval
from stock_kernel.models.catalog import Item, Location
from stock_kernel.models.movements import (
    Delivery,
    DeliveryLine,
    Issue,
    IssueLine,
    Transfer,
    TransferLine,
)
from stock_kernel.models.ncr import NCR
from stock_kernel.models.outbox import OutboxEvent
from stock_kernel.models.period import ItemPrice, Period, PeriodLocation
from stock_kernel.models.pob import POBEntry
from stock_kernel.models.reconciliation import Reconciliation
from stock_kernel.models.sequence import SequenceCounter
from stock_kernel.models.stock import LocationStock

__all__ = [
    "Approval",
    "Delivery",
    "DeliveryLine",
    "Issue",
    "IssueLine",
    "Item",
    "ItemPrice",
    "Location",
    "LocationStock",
    "NCR",
    "OutboxEvent",
    "POBEntry",
    "Period",
    "PeriodLocation",
    "Reconciliation",
    "SequenceCounter",
    "Transfer",
    "TransferLine",
]
