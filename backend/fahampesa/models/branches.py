from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..schemas import BranchContact, BranchLocation, OpeningHours


BRANCH_STATUS_ACTIVE = "ACTIVE"
BRANCH_STATUS_INACTIVE = "INACTIVE"
BRANCH_STATUS_UNDER_MAINTENANCE = "UNDER_MAINTENANCE"
BRANCH_STATUS_TEMPORARILY_CLOSED = "TEMPORARILY_CLOSED"

BRANCH_STATUSES = {
    BRANCH_STATUS_ACTIVE,
    BRANCH_STATUS_INACTIVE,
    BRANCH_STATUS_UNDER_MAINTENANCE,
    BRANCH_STATUS_TEMPORARILY_CLOSED,
}

BRANCH_TYPES = {"MAIN", "BRANCH", "OUTLET", "WAREHOUSE", "KIOSK"}


class Branch(db.Model):
    """
    A physical location (shop, warehouse, kiosk) owned by a tenant.

    Location, contact and opening hours are stored as JSON documents but are
    only ever read and written through the typed DTOs in schemas.py, which
    normalize legacy/partial shapes in one place.

    Deletion is guarded: branches with transfer history or inventory can only
    be deactivated (see branch_service.delete_branch).
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("user_id", "branch_code", name="uq_branches_user_code"),
        db.Index("ix_branches_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    branch_code = db.Column(db.String(16), nullable=False)
    branch_type = db.Column(db.String(16), nullable=False, default="BRANCH")
    description = db.Column(db.Text, nullable=True)

    location_data = db.Column("location", db.JSON, nullable=False, default=dict)
    contact_data = db.Column("contact", db.JSON, nullable=False, default=dict)
    opening_hours_data = db.Column("opening_hours", db.JSON, nullable=False, default=list)

    status = db.Column(db.String(24), nullable=False, default=BRANCH_STATUS_ACTIVE, index=True)

    manager_id = db.Column(db.String(128), nullable=True)
    manager_name = db.Column(db.String(255), nullable=True)
    max_capacity = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="KES")

    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivation_reason = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def location(self) -> BranchLocation:
        return BranchLocation.from_dict(self.location_data)

    @location.setter
    def location(self, value: BranchLocation) -> None:
        self.location_data = value.to_dict()

    @property
    def contact(self) -> BranchContact:
        return BranchContact.from_dict(self.contact_data)

    @contact.setter
    def contact(self, value: BranchContact) -> None:
        self.contact_data = value.to_dict()

    @property
    def opening_hours(self) -> list[OpeningHours]:
        return [OpeningHours.from_dict(h) for h in (self.opening_hours_data or [])]

    @opening_hours.setter
    def opening_hours(self, value: list[OpeningHours]) -> None:
        self.opening_hours_data = [h.to_dict() for h in value]

    @property
    def is_active(self) -> bool:
        return self.status == BRANCH_STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.branch_code!r} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "branch_code": self.branch_code,
            "branch_type": self.branch_type,
            "description": self.description,
            "location": self.location.to_dict(),
            "contact": self.contact.to_dict(),
            "opening_hours": [h.to_dict() for h in self.opening_hours],
            "status": self.status,
            "manager_id": self.manager_id,
            "manager_name": self.manager_name,
            "max_capacity": self.max_capacity,
            "currency": self.currency,
            "deactivated_at": to_utc_z(self.deactivated_at),
            "deactivation_reason": self.deactivation_reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
