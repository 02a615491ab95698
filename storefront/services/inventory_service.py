"""Stock ledger: atomic stock movements with an append-only StockLog.

Every movement is one conditional UPDATE ... RETURNING against the
product or variant row, so concurrent checkouts across processes can
never take the same unit twice. The caller owns the transaction.
"""
from typing import Iterable, List, Optional
import uuid
import logging

from sqlalchemy import select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InsufficientStock, FlashSaleSoldOut
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product, ProductVariant
from storefront.models.promotion import FlashSale, FlashSaleProduct
from storefront.models.stock_log import StockLog, StockChangeReason

logger = logging.getLogger(__name__)


class InventoryService:
    """Stock decrement/restore with ledger entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _stock_table(self, variant_id: Optional[uuid.UUID]):
        return ProductVariant if variant_id else Product

    async def _log(
        self,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
        change: int,
        new_stock: int,
        reason: StockChangeReason,
        reference: str,
    ) -> StockLog:
        entry = StockLog(
            product_id=product_id,
            variant_id=variant_id,
            change_amount=change,
            previous_stock=new_stock - change,
            new_stock=new_stock,
            reason=reason.value,
            reference_id=reference,
        )
        self.db.add(entry)
        return entry

    # ==================== STOCK ====================

    async def decrement(
        self,
        product_id: uuid.UUID,
        quantity: int,
        reference: str,
        variant_id: Optional[uuid.UUID] = None,
        reason: StockChangeReason = StockChangeReason.CHECKOUT,
    ) -> StockLog:
        """Take `quantity` units, or raise InsufficientStock if fewer remain."""
        model = self._stock_table(variant_id)
        row_id = variant_id or product_id
        stmt = (
            update(model)
            .where(and_(model.id == row_id, model.stock >= quantity))
            .values(stock=model.stock - quantity)
            .returning(model.stock)
            .execution_options(synchronize_session=False)
        )
        new_stock = (await self.db.execute(stmt)).scalar_one_or_none()
        if new_stock is None:
            logger.warning(
                f"Insufficient stock for product {product_id} variant {variant_id}: "
                f"requested {quantity} ({reference})"
            )
            raise InsufficientStock(product_id, variant_id, quantity)

        return await self._log(product_id, variant_id, -quantity, new_stock, reason, reference)

    async def restore(
        self,
        product_id: uuid.UUID,
        quantity: int,
        reference: str,
        reason: StockChangeReason,
        variant_id: Optional[uuid.UUID] = None,
    ) -> StockLog:
        """Put `quantity` units back."""
        model = self._stock_table(variant_id)
        row_id = variant_id or product_id
        stmt = (
            update(model)
            .where(model.id == row_id)
            .values(stock=model.stock + quantity)
            .returning(model.stock)
            .execution_options(synchronize_session=False)
        )
        new_stock = (await self.db.execute(stmt)).scalar_one()
        return await self._log(product_id, variant_id, quantity, new_stock, reason, reference)

    # ==================== FLASH SALE COUNTERS ====================

    async def claim_flash_sale(
        self,
        flash_sale_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
        enforce_cap: bool = True,
    ) -> int:
        """Count `quantity` units sold at the flash price; returns the new sold_count."""
        conditions = [
            FlashSaleProduct.flash_sale_id == flash_sale_id,
            FlashSaleProduct.product_id == product_id,
        ]
        if enforce_cap:
            conditions.append(
                or_(
                    FlashSaleProduct.flash_sale_stock == 0,
                    FlashSaleProduct.sold_count + quantity <= FlashSaleProduct.flash_sale_stock,
                )
            )
        stmt = (
            update(FlashSaleProduct)
            .where(and_(*conditions))
            .values(sold_count=FlashSaleProduct.sold_count + quantity)
            .returning(FlashSaleProduct.sold_count)
            .execution_options(synchronize_session=False)
        )
        sold = (await self.db.execute(stmt)).scalar_one_or_none()
        if sold is None:
            logger.warning(f"Flash sale {flash_sale_id} sold out for product {product_id}")
            raise FlashSaleSoldOut(flash_sale_id, product_id)

        await self.db.execute(
            update(FlashSale)
            .where(FlashSale.id == flash_sale_id)
            .values(total_sold=FlashSale.total_sold + quantity)
            .execution_options(synchronize_session=False)
        )
        return sold

    async def release_flash_sale(
        self,
        flash_sale_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
    ) -> None:
        await self.db.execute(
            update(FlashSaleProduct)
            .where(
                and_(
                    FlashSaleProduct.flash_sale_id == flash_sale_id,
                    FlashSaleProduct.product_id == product_id,
                    FlashSaleProduct.sold_count >= quantity,
                )
            )
            .values(sold_count=FlashSaleProduct.sold_count - quantity)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(FlashSale)
            .where(and_(FlashSale.id == flash_sale_id, FlashSale.total_sold >= quantity))
            .values(total_sold=FlashSale.total_sold - quantity)
            .execution_options(synchronize_session=False)
        )

    # ==================== ORDER-LEVEL MOVEMENTS ====================

    async def take_order_items(
        self,
        order_number: str,
        items: Iterable[OrderItem],
        reason: StockChangeReason,
    ) -> List[StockLog]:
        """Re-take stock for every line of an existing order."""
        logs = []
        for item in items:
            logs.append(
                await self.decrement(
                    item.product_id, item.quantity, order_number,
                    variant_id=item.variant_id, reason=reason,
                )
            )
            if item.flash_sale_id:
                # Paid at the flash price already, so the cap is not re-checked
                await self.claim_flash_sale(
                    item.flash_sale_id, item.product_id, item.quantity, enforce_cap=False
                )
        return logs

    async def restore_order_items(
        self,
        order: Order,
        reason: StockChangeReason,
    ) -> List[StockLog]:
        """Give back every unit the order holds."""
        logs = []
        for item in order.items:
            logs.append(
                await self.restore(
                    item.product_id, item.quantity, order.order_number,
                    reason=reason, variant_id=item.variant_id,
                )
            )
            if item.flash_sale_id:
                await self.release_flash_sale(item.flash_sale_id, item.product_id, item.quantity)
        logger.info(
            f"Restored stock for order {order.order_number} "
            f"({len(logs)} lines, reason={reason.value})"
        )
        return logs

    async def get_logs(self, reference: str) -> List[StockLog]:
        result = await self.db.execute(
            select(StockLog)
            .where(StockLog.reference_id == reference)
            .order_by(StockLog.created_at, StockLog.change_amount)
        )
        return list(result.scalars().all())
