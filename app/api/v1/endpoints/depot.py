"""
Depot API Endpoints

Check-in, departure and discrepancy reports. Parcels are identified by the
tracking number printed on their label.
"""
import logging

from fastapi import APIRouter

from app.api.deps import DB, DepotStaff, raise_http
from app.schemas.order import (
    OrderResponse,
    DepotCheckInRequest,
    DepotDepartureRequest,
    DiscrepancyReport,
)
from app.services.exceptions import OrderCoreError
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/check-in", response_model=OrderResponse)
async def check_in_order(data: DepotCheckInRequest, db: DB, agent: DepotStaff):
    """Check a picked-up parcel in at the depot."""
    try:
        order = await OrderService(db).check_in_at_depot(
            data.tracking_number,
            agent,
            data.storage_location_id,
            notes=data.notes,
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order


@router.post("/process-departure", response_model=OrderResponse)
async def process_departure(data: DepotDepartureRequest, db: DB, agent: DepotStaff):
    """
    Release a parcel from the depot.

    Pickup orders are handed over on the spot and need recipient_info.
    """
    recipient = data.recipient_info
    try:
        order = await OrderService(db).process_depot_departure(
            data.tracking_number,
            agent,
            recipient_name=recipient.name if recipient else None,
            recipient_id=recipient.id_number if recipient else None,
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order


@router.post("/discrepancy", response_model=OrderResponse)
async def report_discrepancy(data: DiscrepancyReport, db: DB, agent: DepotStaff):
    """Report a problem with a parcel at the depot."""
    try:
        order = await OrderService(db).report_discrepancy(data.tracking_number, agent, data.reason)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order
