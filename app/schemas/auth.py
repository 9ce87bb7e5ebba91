"""Actor descriptor supplied by the identity service.

The order core never authenticates anyone. It records whoever the verified
bearer token says is acting.
"""
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class UserRole(str, Enum):
    """Marketplace roles."""
    CUSTOMER = "customer"
    SELLER = "seller"
    SUPERADMIN = "superadmin"
    DELIVERY_AGENT = "delivery_agent"
    DEPOT_AGENT = "depot_agent"
    DEPOT_MANAGER = "depot_manager"


ROLE_LABELS = {
    UserRole.CUSTOMER: "Customer",
    UserRole.SELLER: "Seller",
    UserRole.SUPERADMIN: "Admin",
    UserRole.DELIVERY_AGENT: "Delivery Agent",
    UserRole.DEPOT_AGENT: "Depot Agent",
    UserRole.DEPOT_MANAGER: "Depot Manager",
}


class Actor(BaseModel):
    """Who is performing an action on an order."""
    id: uuid.UUID
    name: str
    role: UserRole
    shop_name: Optional[str] = None  # Sellers only
    depot_id: Optional[str] = None  # Depot agents only
    loyalty_status: str = "standard"  # Customers only

    @property
    def label(self) -> str:
        """Audit label, e.g. 'Depot Agent: Paul'."""
        return f"{ROLE_LABELS[self.role]}: {self.name}"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.SUPERADMIN
