"""
StockLedgerService -- the only writer of LocationStock rows.

Responsibility:
    Apply receipts (WAC recomputation) and deductions (issue / transfer
    out) to the per (location, item) stock ledger, and read location
    values for reconciliation and period close.

Architecture position:
    Kernel > Services -- imperative shell around stock_engines.wac and
    stock_engines.stock.

Invariants enforced:
    - Every mutation reads the ledger row with SELECT ... FOR UPDATE, so
      concurrent postings against the same (location, item) serialize;
      WAC recomputation is not commutative.
    - Rows for several items are locked in item-id order to avoid
      lock-order deadlocks between multi-line postings.
    - on_hand never goes negative: deductions are validated first and
      the table carries a check constraint as well.
    - Deductions leave WAC unchanged.

Failure modes:
    - InsufficientStockError when a deduction exceeds on-hand.
    - ValidationError from the WAC engine for invalid receipt inputs.
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_engines.stock import StockRequirement, validate_sufficient_stock
from stock_engines.wac import WACResult, calculate_wac
from stock_kernel.domain.dtos import StockLevel
from stock_kernel.domain.values import ZERO, round_money
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Item
from stock_kernel.models.stock import LocationStock
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


class StockLedgerService(BaseService[LocationStock]):
    """Receipts, deductions and valuation over LocationStock."""

    def _select_for_update(self, location_id: UUID, item_id: UUID) -> LocationStock | None:
        return self.session.execute(
            select(LocationStock)
            .where(
                LocationStock.location_id == location_id,
                LocationStock.item_id == item_id,
            )
            .with_for_update()
        ).scalar_one_or_none()

    def _row_for_update(self, location_id: UUID, item_id: UUID, actor_id: UUID) -> LocationStock:
        """Locked ledger row, created empty on first receipt."""
        row = self._select_for_update(location_id, item_id)
        if row is not None:
            return row

        savepoint = self.session.begin_nested()
        try:
            row = LocationStock(
                location_id=location_id,
                item_id=item_id,
                on_hand=ZERO,
                wac=ZERO,
                created_by_id=actor_id,
            )
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            savepoint.rollback()
            row = self._select_for_update(location_id, item_id)
            if row is None:
                raise
            return row

    def get_level(self, location_id: UUID, item_id: UUID) -> StockLevel:
        row = self.session.execute(
            select(LocationStock).where(
                LocationStock.location_id == location_id,
                LocationStock.item_id == item_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return StockLevel(location_id=location_id, item_id=item_id, on_hand=ZERO, wac=ZERO)
        return StockLevel(
            location_id=location_id,
            item_id=item_id,
            on_hand=Decimal(row.on_hand),
            wac=Decimal(row.wac),
        )

    def lock_levels(self, location_id: UUID, item_ids: Iterable[UUID]) -> dict[UUID, StockLevel]:
        """Lock the ledger rows of several items (id order) and return their levels."""
        levels: dict[UUID, StockLevel] = {}
        for item_id in sorted(set(item_ids), key=str):
            row = self._select_for_update(location_id, item_id)
            on_hand = Decimal(row.on_hand) if row is not None else ZERO
            wac = Decimal(row.wac) if row is not None else ZERO
            levels[item_id] = StockLevel(
                location_id=location_id, item_id=item_id, on_hand=on_hand, wac=wac
            )
        return levels

    def receive(
        self,
        location_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
    ) -> WACResult:
        """Add stock at ``unit_cost`` and recompute WAC."""
        row = self._row_for_update(location_id, item_id, actor_id)
        result = calculate_wac(Decimal(row.on_hand), Decimal(row.wac), quantity, unit_cost)

        previous_wac = row.wac
        row.on_hand = result.new_quantity
        row.wac = result.new_wac
        row.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "stock_received",
            extra={
                "location_id": str(location_id),
                "item_id": str(item_id),
                "quantity": str(quantity),
                "unit_cost": str(unit_cost),
                "previous_wac": str(previous_wac),
                "new_wac": str(result.new_wac),
                "new_quantity": str(result.new_quantity),
            },
        )
        return result

    def deduct_many(
        self,
        location_id: UUID,
        requirements: list[StockRequirement],
        actor_id: UUID,
    ) -> dict[UUID, Decimal]:
        """
        Deduct every requirement or nothing.

        All rows are locked and the whole request is validated before the
        first row is changed.

        Returns:
            The WAC of each item at the moment of deduction.

        Raises:
            InsufficientStockError: listing every short item.
        """
        levels = self.lock_levels(location_id, [r.item_id for r in requirements])
        validate_sufficient_stock(
            location_id,
            requirements,
            {item_id: level.on_hand for item_id, level in levels.items()},
        )

        wacs: dict[UUID, Decimal] = {}
        for req in requirements:
            row = self._select_for_update(location_id, req.item_id)
            row.on_hand = Decimal(row.on_hand) - req.quantity
            row.updated_by_id = actor_id
            wacs[req.item_id] = Decimal(row.wac)
        self.session.flush()

        logger.info(
            "stock_deducted",
            extra={
                "location_id": str(location_id),
                "line_count": len(requirements),
            },
        )
        return wacs

    def location_value(self, location_id: UUID) -> Decimal:
        """Closing stock value: sum of on_hand x wac, rounded to 2 places."""
        rows = self.session.execute(
            select(LocationStock).where(LocationStock.location_id == location_id)
        ).scalars()
        total = sum((Decimal(r.on_hand) * Decimal(r.wac) for r in rows), ZERO)
        return round_money(total)

    def snapshot(self, location_id: UUID) -> dict[str, Any]:
        """JSON-safe stock snapshot of items with on_hand > 0."""
        rows = self.session.execute(
            select(LocationStock, Item)
            .join(Item, Item.id == LocationStock.item_id)
            .where(
                LocationStock.location_id == location_id,
                LocationStock.on_hand > 0,
            )
            .order_by(Item.code)
        ).all()

        items = []
        total = ZERO
        for stock, item in rows:
            value = round_money(Decimal(stock.on_hand) * Decimal(stock.wac))
            total += value
            items.append(
                {
                    "item_id": str(item.id),
                    "item_code": item.code,
                    "item_name": item.name,
                    "on_hand": f"{Decimal(stock.on_hand).normalize():f}",
                    "wac": f"{Decimal(stock.wac).normalize():f}",
                    "value": str(value),
                }
            )
        return {"items": items, "total_value": str(round_money(total))}
