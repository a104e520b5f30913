# storefront/services/product_service.py
import logging
import re
from typing import Any, Dict, Iterable, List
from ..errors import PersistenceError
from ..models.product import ColorVariant, Product, ProductCreateRequest
from ..utils.validators import is_uuid
from .variant_service import VariantService, clean_variants

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")

def slugify(value: str) -> str:
    return _SLUG_STRIP.sub("-", (value or "").lower()).strip("-")

def dedupe_by_color_group(products: Iterable[Product]) -> List[Product]:
    """Keep one listing entry per color group, preferring the base row"""
    result: List[Product] = []
    positions: Dict[str, int] = {}

    for product in products:
        group = product.color_group_id
        if not group:
            result.append(product)
            continue
        if group not in positions:
            positions[group] = len(result)
            result.append(product)
        elif product.is_base_variant and not result[positions[group]].is_base_variant:
            result[positions[group]] = product

    return result

class ProductService:
    def __init__(self, db):
        self.db = db
        self.variants = VariantService(db)

    async def get_products(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        """Active products by id, read fresh for pricing"""
        # ids that are not UUIDs cannot match a row
        ids = sorted({str(i) for i in product_ids if is_uuid(i)})
        if not ids:
            return {}
        rows = await self.db.select("products", {"id": ("in", ids), "is_active": True})
        products = [Product.model_validate(r) for r in rows]
        return {p.id: p for p in products}

    async def create_product(self, request: ProductCreateRequest) -> List[str]:
        """Create a product, or a color group of products when variants are given.

        Returns the ids of every created row, base first.
        """
        slug = request.slug or slugify(request.name)
        base_row = {
            "name": request.name,
            "slug": slug,
            "sku": request.sku,
            "description": request.description,
            "price": request.price,
            "category_id": request.category_id,
            "size_chart": request.size_chart,
            "images": request.images,
            "is_active": True,
        }

        if clean_variants(request.variants):
            def build_variant(base: Dict[str, Any], variant: ColorVariant, index: int) -> Dict[str, Any]:
                suffix = slugify(variant.color_name) or str(index + 1)
                row = {"slug": f"{base['slug']}-{suffix}"}
                if base.get("sku"):
                    row["sku"] = f"{base['sku']}-{suffix.upper()}"
                return row

            result = await self.variants.create_group(
                "products", base_row, request.variants, request.stock_quantity, build_variant
            )
            product_ids = result.all_ids
        else:
            created = await self.db.insert("products", {**base_row, "stock_quantity": request.stock_quantity})
            product_ids = [str(created[0]["id"])]

        logger.info(f"Created product {slug} ({len(product_ids)} rows)")

        if request.specs:
            spec_rows = [
                {
                    "product_id": product_id,
                    "label": spec.label,
                    "value": spec.value,
                    "sort_order": position,
                }
                for product_id in product_ids
                for position, spec in enumerate(request.specs)
            ]
            try:
                await self.db.insert("product_specs", spec_rows)
            except PersistenceError as e:
                await self.variants.discard("products", product_ids, "Could not create product specs", e)

        return product_ids

