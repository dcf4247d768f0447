"""In-memory catalog: categories, subcategories, products and their discount tiers."""

import threading
from typing import Optional

from .errors import CategoryInUse, CategoryNotFound, InvalidDiscountTier, ProductNotFound, SubcategoryNotFound
from .logger import logger
from .pricing import validate_discount_tiers
from .schemas import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    DiscountTier,
    Product,
    ProductCreate,
    ProductUpdate,
    Subcategory,
    SubcategoryCreate,
    SubcategoryUpdate,
    utcnow,
)


class InMemoryCatalog:
    """Catalog store that also serves as the order builder's ``ProductLookup``.

    Every product write goes through ``validate_discount_tiers``, so a stored
    product never carries a malformed tier. Editing a product has no effect on
    orders that were already built from it.
    """

    def __init__(self) -> None:
        self._categories: dict[str, Category] = {}
        self._subcategories: dict[str, Subcategory] = {}
        self._products: dict[str, Product] = {}
        self._lock = threading.RLock()

    # -------------------- ProductLookup --------------------

    def get(self, product_id: str) -> Optional[Product]:
        with self._lock:
            product = self._products.get(product_id)
            return product.model_copy(deep=True) if product else None

    # -------------------- Categories --------------------

    def add_category(self, data: CategoryCreate) -> Category:
        category = Category(**data.model_dump())
        with self._lock:
            self._categories[category.category_id] = category
        logger.info(f"Category created | category_id={category.category_id} | name={category.name}")
        return category

    def get_category(self, category_id: str) -> Category:
        with self._lock:
            category = self._categories.get(category_id)
        if category is None:
            raise CategoryNotFound(category_id)
        return category

    def update_category(self, category_id: str, changes: CategoryUpdate) -> Category:
        updates = changes.model_dump(exclude_unset=True)
        with self._lock:
            category = self.get_category(category_id)
            updated = Category.model_validate({**category.model_dump(), **updates})
            self._categories[category_id] = updated
        logger.info(f"Category updated | category_id={category_id} | fields={sorted(updates)}")
        return updated

    def list_categories(self) -> list[Category]:
        with self._lock:
            return sorted(self._categories.values(), key=lambda c: c.name)

    def delete_category(self, category_id: str) -> None:
        with self._lock:
            if category_id not in self._categories:
                raise CategoryNotFound(category_id)
            if any(s.category_id == category_id for s in self._subcategories.values()):
                raise CategoryInUse(f"Category {category_id} still has subcategories")
            del self._categories[category_id]
        logger.info(f"Category deleted | category_id={category_id}")

    # -------------------- Subcategories --------------------

    def add_subcategory(self, data: SubcategoryCreate) -> Subcategory:
        with self._lock:
            self.get_category(data.category_id)
            subcategory = Subcategory(**data.model_dump())
            self._subcategories[subcategory.subcategory_id] = subcategory
        logger.info(
            f"Subcategory created | subcategory_id={subcategory.subcategory_id} | category_id={subcategory.category_id}"
        )
        return subcategory

    def get_subcategory(self, subcategory_id: str) -> Subcategory:
        with self._lock:
            subcategory = self._subcategories.get(subcategory_id)
        if subcategory is None:
            raise SubcategoryNotFound(subcategory_id)
        return subcategory

    def update_subcategory(self, subcategory_id: str, changes: SubcategoryUpdate) -> Subcategory:
        """Apply a partial edit, possibly moving the subcategory to another category.

        Raises:
            SubcategoryNotFound: If the subcategory does not exist
            CategoryNotFound: If the target category does not exist
        """
        updates = changes.model_dump(exclude_unset=True)
        with self._lock:
            subcategory = self.get_subcategory(subcategory_id)
            if "category_id" in updates:
                self.get_category(updates["category_id"])
            updated = Subcategory.model_validate({**subcategory.model_dump(), **updates})
            self._subcategories[subcategory_id] = updated
        logger.info(f"Subcategory updated | subcategory_id={subcategory_id} | fields={sorted(updates)}")
        return updated

    def list_subcategories(self, category_id: Optional[str] = None) -> list[Subcategory]:
        with self._lock:
            subcategories = list(self._subcategories.values())
        if category_id:
            subcategories = [s for s in subcategories if s.category_id == category_id]
        return sorted(subcategories, key=lambda s: s.name)

    def delete_subcategory(self, subcategory_id: str) -> None:
        with self._lock:
            if subcategory_id not in self._subcategories:
                raise SubcategoryNotFound(subcategory_id)
            if any(p.subcategory_id == subcategory_id for p in self._products.values()):
                raise CategoryInUse(f"Subcategory {subcategory_id} still has products")
            del self._subcategories[subcategory_id]
        logger.info(f"Subcategory deleted | subcategory_id={subcategory_id}")

    # -------------------- Products --------------------

    def add_product(self, data: ProductCreate) -> Product:
        """Create a product after validating its subcategory and discount tiers.

        Raises:
            InvalidDiscountTier: If the tier set is malformed
            SubcategoryNotFound: If ``subcategory_id`` is set but unknown
        """
        tiers = validate_discount_tiers(data.discount_tiers)
        with self._lock:
            self._check_subcategory(data.subcategory_id)
            product = Product(**data.model_dump(exclude={"discount_tiers"}), discount_tiers=tiers)
            self._products[product.product_id] = product
        logger.info(
            f"Product created | product_id={product.product_id} | price={product.price} | tiers={len(tiers)}"
        )
        return product.model_copy(deep=True)

    def update_product(self, product_id: str, changes: ProductUpdate) -> Product:
        """Apply a partial edit. Existing orders keep their frozen prices."""
        updates = changes.model_dump(exclude_unset=True)
        if "discount_tiers" in updates:
            updates["discount_tiers"] = validate_discount_tiers(changes.discount_tiers)
        with self._lock:
            product = self._require(product_id)
            if "subcategory_id" in updates:
                self._check_subcategory(updates["subcategory_id"])
            merged = {**product.model_dump(), **updates}
            merged["updated_at"] = utcnow()
            updated = Product.model_validate(merged)
            self._products[product_id] = updated
        logger.info(f"Product updated | product_id={product_id} | fields={sorted(updates)}")
        return updated.model_copy(deep=True)

    def delete_product(self, product_id: str) -> None:
        with self._lock:
            self._require(product_id)
            del self._products[product_id]
        logger.info(f"Product deleted | product_id={product_id}")

    def list_products(self, subcategory_id: Optional[str] = None) -> list[Product]:
        with self._lock:
            products = [p.model_copy(deep=True) for p in self._products.values()]
        if subcategory_id:
            products = [p for p in products if p.subcategory_id == subcategory_id]
        return sorted(products, key=lambda p: p.created_at)

    def list_by_subcategory(self, subcategory_id: str) -> list[Product]:
        with self._lock:
            if subcategory_id not in self._subcategories:
                raise SubcategoryNotFound(subcategory_id)
        return self.list_products(subcategory_id=subcategory_id)

    # -------------------- Discount tiers --------------------

    def add_discount_tier(self, product_id: str, min_quantity: int, discount_percentage) -> Product:
        """Add one tier to a product.

        Raises:
            ProductNotFound: If the product does not exist
            InvalidDiscountTier: If the tier is malformed or its threshold is already used
        """
        try:
            tier = DiscountTier(min_quantity=min_quantity, discount_percentage=discount_percentage)
        except ValueError as e:
            raise InvalidDiscountTier(str(e)) from e
        with self._lock:
            product = self._require(product_id)
            tiers = validate_discount_tiers([*product.discount_tiers, tier])
            updated = product.model_copy(update={"discount_tiers": tiers, "updated_at": utcnow()})
            self._products[product_id] = updated
        logger.info(
            f"Discount tier added | product_id={product_id} | min_quantity={tier.min_quantity} | "
            f"discount_percentage={tier.discount_percentage}"
        )
        return updated.model_copy(deep=True)

    def remove_discount_tier(self, product_id: str, min_quantity: int) -> Product:
        with self._lock:
            product = self._require(product_id)
            remaining = [t for t in product.discount_tiers if t.min_quantity != min_quantity]
            if len(remaining) == len(product.discount_tiers):
                raise InvalidDiscountTier(f"Product {product_id} has no tier for min_quantity {min_quantity}")
            updated = product.model_copy(update={"discount_tiers": remaining, "updated_at": utcnow()})
            self._products[product_id] = updated
        logger.info(f"Discount tier removed | product_id={product_id} | min_quantity={min_quantity}")
        return updated.model_copy(deep=True)

    # -------------------- helpers --------------------

    def _require(self, product_id: str) -> Product:
        product = self._products.get(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def _check_subcategory(self, subcategory_id: Optional[str]) -> None:
        if subcategory_id and subcategory_id not in self._subcategories:
            raise SubcategoryNotFound(subcategory_id)

