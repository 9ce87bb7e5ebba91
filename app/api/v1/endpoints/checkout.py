"""
Checkout API Endpoints

Quotes a cart and places orders. Prices, fees and discounts are always
recomputed server-side.
"""
import logging

from fastapi import APIRouter

from app.api.deps import DB, Customer, raise_http
from app.schemas.checkout import CheckoutRequest, CheckoutQuoteResponse
from app.schemas.order import OrderResponse
from app.services.checkout_service import CheckoutService
from app.services.exceptions import OrderCoreError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/quote", response_model=CheckoutQuoteResponse)
async def quote_cart(data: CheckoutRequest, db: DB, customer: Customer):
    """
    Price a cart without placing it.

    A rejected promo code does not fail the quote; the reason is returned in
    promo_rejection.
    """
    try:
        quote = await CheckoutService(db).quote(data, customer)
    except OrderCoreError as e:
        raise_http(e)
    return quote.to_dict()


@router.post("/orders", response_model=OrderResponse, status_code=201)
async def place_order(data: CheckoutRequest, db: DB, customer: Customer):
    """Place an order. Stock, order and promo use commit together."""
    try:
        order = await CheckoutService(db).place_order(data, customer)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order
