# Overview: Service-layer operations for items, categories and barcodes.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Barcode, Category, Inventory, InventoryHistory, Item, TransactionItem
from ..models.catalog import MAX_CATEGORY_LEVEL
from ..validation import ModelValidationPolicy, coerce_int, enforce_rules_item, validate_payload
from .activity_service import record_activity
"""
Catalog invariants

- Item.code is unique and stored upper-case. It cannot change once a
  transaction references the item.
- Every item has an Inventory row from the moment it is created.
- Barcode values are normalized (upper-case, inner spaces removed) and
  unique across all items, active or not.
- Categories form a forest at most MAX_CATEGORY_LEVEL deep; the parent
  chain never loops back on itself.
"""


ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "description", "category_id", "unit_price_cents",
        "cost_price_cents", "unit", "is_active", "min_stock_level", "notes",
    },
    required_on_create={"code", "name"},
)


# =============================================================================
# Items
# =============================================================================

def _check_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError("Category not found", {"category_id": category_id})


def _code_taken(code: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Item.id).filter(Item.code == code)
    if exclude_id is not None:
        query = query.filter(Item.id != exclude_id)
    return query.first() is not None


def create_item(payload: dict, *, actor_id: int | None = None) -> Item:
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
    enforce_rules_item(patch)
    _check_category(patch.get("category_id"))

    if _code_taken(patch["code"]):
        raise ConflictError("Item code already exists", {"code": patch["code"]})

    item = Item(created_by=actor_id, **patch)
    db.session.add(item)
    db.session.flush()
    db.session.add(Inventory(item_id=item.id, quantity=0))
    record_activity(actor_id, "create", f"item:{item.id}", f"Created item {item.code}")
    db.session.commit()
    return item


def get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFoundError("Item not found")
    return item


def list_items(*, category_id: int | None = None, active_only: bool = False, q: str | None = None) -> list[Item]:
    query = db.session.query(Item)
    if category_id is not None:
        query = query.filter(Item.category_id == category_id)
    if active_only:
        query = query.filter(Item.is_active.is_(True))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(db.or_(Item.code.ilike(like), Item.name.ilike(like)))
    return query.order_by(Item.code.asc()).all()


def _has_transactions(item_id: int) -> bool:
    return db.session.query(TransactionItem.id).filter_by(item_id=item_id).first() is not None


def update_item(item_id: int, payload: dict, *, actor_id: int | None = None) -> Item:
    item = get_item(item_id)
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
    enforce_rules_item(patch)
    if "category_id" in patch:
        _check_category(patch["category_id"])

    if "code" in patch and patch["code"] != item.code:
        if _has_transactions(item.id):
            raise ConflictError("Item code cannot change once transactions reference it")
        if _code_taken(patch["code"], exclude_id=item.id):
            raise ConflictError("Item code already exists", {"code": patch["code"]})

    for key, value in patch.items():
        setattr(item, key, value)
    record_activity(actor_id, "update", f"item:{item.id}", f"Updated item {item.code}")
    db.session.commit()
    return item


def delete_item(item_id: int, *, actor_id: int | None = None) -> None:
    """Hard delete; refused once the item has transactions or stock history."""
    item = get_item(item_id)
    if _has_transactions(item.id):
        raise ConflictError("Item is referenced by transactions; deactivate it instead")
    if db.session.query(InventoryHistory.id).filter_by(item_id=item.id).first():
        raise ConflictError("Item has stock history; deactivate it instead")

    for barcode in list(item.barcodes):
        db.session.delete(barcode)
    if item.inventory is not None:
        db.session.delete(item.inventory)
    record_activity(actor_id, "delete", f"item:{item.id}", f"Deleted item {item.code}")
    db.session.delete(item)
    db.session.commit()


# =============================================================================
# Barcodes
# =============================================================================

def normalize_barcode(value) -> str:
    if value is None:
        raise ValidationError("barcode is required")
    normalized = "".join(str(value).split()).upper()
    if not normalized:
        raise ValidationError("barcode is required")
    if len(normalized) > 128:
        raise ValidationError("barcode exceeds max length 128")
    return normalized


def add_barcode(item_id: int, barcode, *, actor_id: int | None = None) -> Barcode:
    """
    Attach a barcode to an item.

    Raises ConflictError when the value is already used by any item. The
    unique constraint backs the up-front check under concurrent inserts.
    """
    item = get_item(item_id)
    value = normalize_barcode(barcode)

    existing = db.session.query(Barcode).filter_by(barcode=value).first()
    if existing:
        raise ConflictError(
            "Barcode already exists",
            {"barcode": value, "item_id": existing.item_id},
        )

    row = Barcode(item_id=item.id, barcode=value, is_active=True)
    db.session.add(row)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists", {"barcode": value})

    record_activity(actor_id, "create", f"barcode:{row.id}", f"Added barcode {value} to {item.code}")
    db.session.commit()
    return row


def lookup_barcode(value) -> Barcode:
    normalized = normalize_barcode(value)
    row = db.session.query(Barcode).filter_by(barcode=normalized, is_active=True).first()
    if row is None:
        raise NotFoundError("Barcode not found", {"barcode": normalized})
    return row


def list_barcodes(*, item_id: int | None = None) -> list[Barcode]:
    query = db.session.query(Barcode)
    if item_id is not None:
        get_item(item_id)
        query = query.filter(Barcode.item_id == item_id)
    return query.order_by(Barcode.id.asc()).all()


def delete_barcode(barcode_id: int, *, actor_id: int | None = None) -> None:
    row = db.session.get(Barcode, barcode_id)
    if row is None:
        raise NotFoundError("Barcode not found")
    record_activity(actor_id, "delete", f"barcode:{row.id}", f"Removed barcode {row.barcode}")
    db.session.delete(row)
    db.session.commit()


# =============================================================================
# Categories
# =============================================================================

def _clean_category_name(name) -> str:
    name = str(name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 128:
        raise ValidationError("name exceeds max length 128")
    return name


def _resolve_parent(parent_id) -> Category | None:
    if parent_id is None:
        return None
    parent = db.session.get(Category, coerce_int(parent_id, "parent_id"))
    if parent is None:
        raise ValidationError("Parent category not found", {"parent_id": parent_id})
    return parent


def _subtree_depth(category: Category) -> int:
    """Levels in the subtree rooted at category, counting category itself."""
    if not category.children:
        return 1
    return 1 + max(_subtree_depth(child) for child in category.children)


def _relevel(category: Category, level: int) -> None:
    category.level = level
    for child in category.children:
        _relevel(child, level + 1)


def create_category(name, parent_id=None, *, actor_id: int | None = None) -> Category:
    parent = _resolve_parent(parent_id)
    level = parent.level + 1 if parent else 1
    if level > MAX_CATEGORY_LEVEL:
        raise ValidationError(f"Categories can be at most {MAX_CATEGORY_LEVEL} levels deep")

    category = Category(name=_clean_category_name(name), parent_id=parent.id if parent else None, level=level)
    db.session.add(category)
    db.session.flush()
    record_activity(actor_id, "create", f"category:{category.id}", f"Created category {category.name}")
    db.session.commit()
    return category


def update_category(category_id: int, data: dict, *, actor_id: int | None = None) -> Category:
    """
    Rename and/or move a category.

    Moving re-levels the whole subtree; moving under itself or one of its
    descendants is refused.
    """
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")

    if "name" in data:
        category.name = _clean_category_name(data["name"])

    if "parent_id" in data:
        parent = _resolve_parent(data["parent_id"])

        ancestor = parent
        while ancestor is not None:
            if ancestor.id == category.id:
                raise ValidationError("A category cannot be moved under itself or its descendants")
            ancestor = ancestor.parent

        level = parent.level + 1 if parent else 1
        if level + _subtree_depth(category) - 1 > MAX_CATEGORY_LEVEL:
            raise ValidationError(f"Categories can be at most {MAX_CATEGORY_LEVEL} levels deep")

        category.parent_id = parent.id if parent else None
        category.parent = parent
        _relevel(category, level)

    record_activity(actor_id, "update", f"category:{category.id}", f"Updated category {category.name}")
    db.session.commit()
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.level.asc(), Category.name.asc()).all()


def delete_category(category_id: int, *, actor_id: int | None = None) -> None:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    if category.children:
        raise ConflictError("Category has subcategories")
    if db.session.query(Item.id).filter_by(category_id=category.id).first():
        raise ConflictError("Category has items")

    record_activity(actor_id, "delete", f"category:{category.id}", f"Deleted category {category.name}")
    db.session.delete(category)
    db.session.commit()
