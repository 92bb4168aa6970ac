from __future__ import annotations

from ..extensions import db
from smerp.time_utils import to_utc_z


MAX_CATEGORY_LEVEL = 3


class Category(db.Model):
    """
    Item category, self-referencing through parent_id.

    INVARIANT: the parent chain is acyclic. level is 1 for roots and
    parent.level + 1 otherwise (1: major, 2: middle, 3: minor). Both are
    enforced in catalog_service on insert and update.
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    level = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "level": self.level,
            "created_at": to_utc_z(self.created_at),
        }


class Item(db.Model):
    """
    Item master data.

    code is the item's identity: unique, stored upper-case. Prices are
    authoritative in cents.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    category = db.relationship("Category", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<Item id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "unit": self.unit,
            "is_active": self.is_active,
            "min_stock_level": self.min_stock_level,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }


class Barcode(db.Model):
    """
    Scannable code for an item. Values are normalized (upper-case, no
    spaces) and globally unique, active or not.
    """
    __tablename__ = "barcodes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    barcode = db.Column(db.String(128), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("barcodes", lazy=True))

    def to_dict(self, include_item: bool = False) -> dict:
        data = {
            "id": self.id,
            "item_id": self.item_id,
            "barcode": self.barcode,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
        if include_item and self.item is not None:
            data["item"] = {"id": self.item.id, "code": self.item.code, "name": self.item.name}
        return data
