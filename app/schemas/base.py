"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models inherit from BaseResponseSchema.
Money is exchanged as Decimal and serialized as a number.
"""

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer


# FCFA amounts: Decimal internally, plain number in JSON
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class OrderItemResponse(BaseResponseSchema):
            id: UUID
            product_name: str
            unit_price: Money
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Extra fields are ignored so older clients keep working.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional by default for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
    )
