"""
stock_services.delivery_service -- Post goods receipts.

Responsibility:
    Posts a delivery at a location in one transaction: document number,
    line snapshots (actual price, period-locked price, variance, value),
    WAC recomputation through the stock ledger, and automatic NCRs for
    lines whose price variance exceeds the configured tolerance.

Architecture position:
    Services -- composes PeriodService (posting gate, locked prices),
    StockLedgerService (WAC), SequenceService (DEL numbers), NCRService
    (auto NCRs) and the price variance engine.

Invariants enforced:
    - Posting requires the OPEN period and an OPEN period location.
    - Every item is active and has a period price; missing prices are
      reported together before anything is written.
    - unit_price and period_price are kept on every line permanently.
    - Stock update and auto NCR creation share the caller's transaction:
      both happen or neither does.

Failure modes:
    - ValidationError (no lines, bad quantity or price, inactive item).
    - NotFoundError (unknown item).
    - MissingPeriodPricesError, PeriodNotOpenError.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_engines.price_variance import check_price_variance
from stock_engines.stock import validate_positive_quantity
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import ZERO, round_money, to_decimal
from stock_kernel.exceptions import (
    MissingPeriodPricesError,
    NotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.catalog import Item
from stock_kernel.models.movements import Delivery, DeliveryLine
from stock_kernel.services.period_service import PeriodService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_services._types import (
    DeliveryInfo,
    DeliveryLineInfo,
    DeliveryLineInput,
    DeliveryResult,
    WACUpdate,
)
from stock_services.ncr_service import NCRService

logger = get_logger("services.delivery")


def delivery_to_dto(delivery: Delivery) -> DeliveryInfo:
    return DeliveryInfo(
        id=delivery.id,
        delivery_no=delivery.delivery_no,
        location_id=delivery.location_id,
        period_id=delivery.period_id,
        delivery_date=delivery.delivery_date,
        total_amount=Decimal(delivery.total_amount),
        has_variance=delivery.has_variance,
        supplier_name=delivery.supplier_name,
        invoice_no=delivery.invoice_no,
        lines=tuple(
            DeliveryLineInfo(
                id=line.id,
                line_no=line.line_no,
                item_id=line.item_id,
                quantity=Decimal(line.quantity),
                unit_price=Decimal(line.unit_price),
                period_price=Decimal(line.period_price),
                price_variance=Decimal(line.price_variance),
                line_value=Decimal(line.line_value),
            )
            for line in delivery.lines
        ),
    )


class DeliveryService:
    """Posts deliveries (receipts) against the open period."""

    def __init__(
        self,
        session: Session,
        period_service: PeriodService,
        ledger: StockLedgerService,
        sequence_service: SequenceService,
        ncr_service: NCRService,
        clock: Clock | None = None,
        config: StockConfig | None = None,
    ) -> None:
        self._session = session
        self._periods = period_service
        self._ledger = ledger
        self._sequence = sequence_service
        self._ncrs = ncr_service
        self._clock = clock or SystemClock()
        self._config = config or StockConfig.with_defaults()

    def _load_items(self, item_ids: list[UUID]) -> dict[UUID, Item]:
        items = {
            item.id: item
            for item in self._session.execute(
                select(Item).where(Item.id.in_(item_ids))
            ).scalars()
        }
        for item_id in item_ids:
            item = items.get(item_id)
            if item is None:
                raise NotFoundError("Item", item_id)
            if not item.is_active:
                raise ValidationError("item_id", f"Item {item.code} is inactive")
        return items

    def post_delivery(
        self,
        location_id: UUID,
        lines: list[DeliveryLineInput],
        actor_id: UUID,
        delivery_date: date | None = None,
        supplier_name: str | None = None,
        invoice_no: str | None = None,
    ) -> DeliveryResult:
        """
        Post a delivery and everything it causes.

        Returns:
            DeliveryResult with the delivery, any auto NCRs, and the WAC
            change of each line.
        """
        if not lines:
            raise ValidationError("lines", "at least one line is required")

        parsed = [
            (
                line.item_id,
                validate_positive_quantity(line.quantity, f"lines[{idx}].quantity"),
                to_decimal(line.unit_price, f"lines[{idx}].unit_price"),
            )
            for idx, line in enumerate(lines)
        ]
        for idx, (_, _, unit_price) in enumerate(parsed):
            if unit_price < ZERO:
                raise ValidationError(f"lines[{idx}].unit_price", "cannot be negative")

        period = self._periods.require_postable(location_id)
        item_ids = list(dict.fromkeys(item_id for item_id, _, _ in parsed))
        items = self._load_items(item_ids)

        prices = self._periods.get_item_prices(period.id, item_ids)
        missing = [item_id for item_id in item_ids if item_id not in prices]
        if missing:
            logger.warning(
                "delivery_rejected_missing_prices",
                extra={"period_id": str(period.id), "missing_count": len(missing)},
            )
            raise MissingPeriodPricesError(period.id, missing)

        posting_date = delivery_date or self._clock.today()
        delivery = Delivery(
            delivery_no=self._sequence.next_document_number(
                self._config.delivery_prefix, posting_date.year
            ),
            location_id=location_id,
            period_id=period.id,
            delivery_date=posting_date,
            supplier_name=supplier_name,
            invoice_no=invoice_no,
            total_amount=ZERO,
            has_variance=False,
            created_by_id=actor_id,
        )
        self._session.add(delivery)
        self._session.flush()

        thresholds = self._config.variance.to_thresholds()
        total = ZERO
        has_variance = False
        ncrs = []
        wac_updates = []

        with LogContext.bind(location_id=str(location_id), period_id=str(period.id)):
            for line_no, (item_id, quantity, unit_price) in enumerate(parsed, start=1):
                item = items[item_id]
                period_price = prices[item_id]
                variance = check_price_variance(unit_price, period_price, quantity, thresholds)
                line_value = round_money(quantity * unit_price)

                line = DeliveryLine(
                    delivery_id=delivery.id,
                    line_no=line_no,
                    item_id=item_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    period_price=period_price,
                    price_variance=variance.variance,
                    line_value=line_value,
                    created_by_id=actor_id,
                )
                self._session.add(line)
                self._session.flush()

                previous_wac = self._ledger.get_level(location_id, item_id).wac
                wac = self._ledger.receive(location_id, item_id, quantity, unit_price, actor_id)
                wac_updates.append(
                    WACUpdate(
                        item_id=item_id,
                        previous_wac=previous_wac,
                        new_wac=wac.new_wac,
                        new_quantity=wac.new_quantity,
                    )
                )

                if variance.has_variance:
                    has_variance = True
                if variance.exceeds_threshold:
                    ncrs.append(
                        self._ncrs.create_price_variance_ncr(
                            location_id=location_id,
                            delivery_id=delivery.id,
                            delivery_line_id=line.id,
                            item=item,
                            quantity=quantity,
                            variance=variance,
                            actor_id=actor_id,
                            delivery_no=delivery.delivery_no,
                        )
                    )
                total += line_value

        delivery.total_amount = round_money(total)
        delivery.has_variance = has_variance
        self._session.flush()
        self._session.refresh(delivery, ["lines"])

        logger.info(
            "delivery_posted",
            extra={
                "delivery_id": str(delivery.id),
                "delivery_no": delivery.delivery_no,
                "location_id": str(location_id),
                "period_id": str(period.id),
                "line_count": len(parsed),
                "total_amount": str(delivery.total_amount),
                "has_variance": has_variance,
                "ncr_count": len(ncrs),
            },
        )
        return DeliveryResult(
            delivery=delivery_to_dto(delivery),
            ncrs=tuple(ncrs),
            wac_updates=tuple(wac_updates),
        )

    def get_delivery(self, delivery_id: UUID) -> DeliveryInfo:
        delivery = self._session.get(Delivery, delivery_id)
        if delivery is None:
            raise NotFoundError("Delivery", delivery_id)
        return delivery_to_dto(delivery)
