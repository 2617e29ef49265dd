from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ACTIVITY_ACTIONS = (
    "STOCK_UPDATE",
    "BULK_STOCK_UPDATE",
    "STOCK_RECONCILIATION",
    "WAREHOUSE_OVERRIDE_DISABLED",
    "BULK_STOCK_SYNC",
)

ACTIVITY_TARGET_TYPES = ("PRODUCT", "SYSTEM")


class WarehouseActivity(db.Model):
    """
    Warehouse activity log entry.

    One row per manual stock change made through the warehouse screens.
    changes maps a field name to {"from": ..., "to": ...}; product name and
    sku are copied at write time so the entry still reads after a rename.

    IMMUTABLE: Never update or delete. Rows are added in the same
    transaction as the stock change they describe.
    """
    __tablename__ = "warehouse_activities"
    __table_args__ = (
        db.Index("ix_warehouse_activities_user_created", "user_id", "created_at"),
        db.Index("ix_warehouse_activities_action_created", "action", "created_at"),
        db.Index("ix_warehouse_activities_target_created", "target_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)  # Nullable for CLI runs

    action = db.Column(db.String(32), nullable=False)
    target_type = db.Column(db.String(16), nullable=False, default="PRODUCT")
    target_id = db.Column(db.Integer, nullable=True)
    target_name = db.Column(db.String(255), nullable=True)
    target_sku = db.Column(db.String(64), nullable=True)

    changes = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<WarehouseActivity id={self.id} action={self.action} target_id={self.target_id}>"

    def to_dict(self) -> dict:
        user = self.user
        return {
            "id": self.id,
            "timestamp": to_utc_z(self.created_at),
            "user": {
                "id": user.id,
                "name": user.name or user.username,
                "role": user.sub_role,
            } if user is not None else None,
            "action": self.action,
            "target": {
                "type": self.target_type,
                "id": self.target_id,
                "name": self.target_name or "",
                "sku": self.target_sku or "",
            },
            "changes": self.changes,
            "notes": self.notes or "",
        }
