from __future__ import annotations

from ..extensions import db
from smerp.time_utils import to_utc_z


HISTORY_TYPES = (
    "purchase",
    "sale",
    "purchase_cancel",
    "sale_cancel",
    "purchase_update",
    "sale_update",
    "adjustment",
)


class Inventory(db.Model):
    """
    Current on-hand quantity, one row per item.

    Writes go through inventory_service.adjust_inventory only. version_id is
    SQLAlchemy's optimistic locking counter: an UPDATE that finds a different
    version raises StaleDataError instead of overwriting a concurrent write.
    """
    __tablename__ = "inventory"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, unique=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    item = db.relationship("Item", backref=db.backref("inventory", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Inventory item_id={self.item_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryHistory(db.Model):
    """
    Append-only ledger of quantity changes.

    INVARIANT: quantity_after = quantity_before + change, and quantity_after
    equals Inventory.quantity at the moment the row is written. Replaying
    every change for an item reproduces its current quantity.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.Index("ix_inventory_history_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    # Plain integer (no FK): history outlives a deleted transaction
    transaction_id = db.Column(db.Integer, nullable=True, index=True)

    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    change = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "transaction_type": self.transaction_type,
            "transaction_id": self.transaction_id,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "change": self.change,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
