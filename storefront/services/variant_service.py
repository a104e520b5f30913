import logging
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel
from ..errors import PartialFanoutFailure, PersistenceError
from ..models.product import ColorVariant

logger = logging.getLogger(__name__)

VariantRowBuilder = Callable[[Dict[str, Any], ColorVariant, int], Dict[str, Any]]

class FanoutResult(BaseModel):
    group_id: str
    base_id: str
    variant_ids: List[str] = []

    @property
    def all_ids(self) -> List[str]:
        return [self.base_id, *self.variant_ids]

def clean_variants(variants: List[ColorVariant]) -> List[ColorVariant]:
    """Drop colors without a name"""
    return [v for v in variants or [] if (v.color_name or "").strip()]

class VariantService:
    """Writes color-variant groups: one base row plus a sibling row per color.

    The base row is inserted first with empty color fields, then its own id is
    written into ``color_group_id``, then all siblings go in with a single
    multi-row insert. A failure after the base insert deletes whatever was
    created; if that cleanup fails too, ``PartialFanoutFailure`` names the
    rows left behind.
    """

    def __init__(self, db):
        self.db = db

    async def create_group(self, table: str, base_row: Dict[str, Any], variants: List[ColorVariant],
                           base_stock: int, build_variant: Optional[VariantRowBuilder] = None) -> FanoutResult:
        base_payload = {
            **base_row,
            "color_group_id": None,
            "color_name": None,
            "color_hex": None,
            "stock_quantity": base_stock,
        }
        created = await self.db.insert(table, base_payload)
        base_id = str(created[0]["id"])
        logger.info(f"Created base {table} row {base_id}")

        try:
            updated = await self.db.update(table, base_id, {"color_group_id": base_id})
        except PersistenceError as e:
            await self.discard(table, [base_id], "Could not set variant group", e)
        if not updated:
            await self.discard(table, [base_id], "Could not set variant group")

        variant_ids: List[str] = []
        variants = clean_variants(variants)
        if variants:
            payloads = []
            for index, variant in enumerate(variants):
                payload = {
                    **base_row,
                    "color_group_id": base_id,
                    "color_name": variant.color_name,
                    "color_hex": variant.color_hex or None,
                    "stock_quantity": variant.resolved_stock(base_stock),
                }
                if build_variant:
                    payload.update(build_variant(base_row, variant, index))
                payloads.append(payload)

            try:
                rows = await self.db.insert(table, payloads)
            except PersistenceError as e:
                await self.discard(table, [base_id], "Could not create color variants", e)
            variant_ids = [str(r["id"]) for r in rows]
            logger.info(f"Created {len(variant_ids)} color variants in group {base_id}")

        return FanoutResult(group_id=base_id, base_id=base_id, variant_ids=variant_ids)

    async def discard(self, table: str, row_ids: List[str], message: str,
                      cause: Optional[BaseException] = None):
        """Delete rows created by a failed write, then raise"""
        try:
            await self.db.delete(table, row_ids)
        except PersistenceError as e:
            logger.error(f"{message}; cleanup of {table} rows {row_ids} failed: {e}")
            raise PartialFanoutFailure(message, row_ids, cause or e) from e

        logger.warning(f"{message}; removed {table} rows {row_ids}")
        raise PersistenceError(message, cause)
