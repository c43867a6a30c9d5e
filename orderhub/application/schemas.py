from pydantic import BaseModel, ConfigDict, Field, field_validator
import json
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Any, Optional

class OrderCreate(BaseModel):
    # Everything optional: the creation workflow reports missing fields itself
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    mobile: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    pincode: Optional[str] = None
    courier_service: Optional[str] = None
    pickup_location: Optional[str] = None
    package_value: Optional[float] = None
    weight: Optional[float] = None
    total_items: Optional[int] = None
    is_cod: bool = False
    cod_amount: Optional[float] = None
    reseller_name: Optional[str] = None
    reseller_mobile: Optional[str] = None
    product_description: Optional[str] = None
    reference_number: Optional[str] = None
    skip_tracking: bool = False
    waybill: Optional[str] = None
    tracking_id: Optional[str] = None
    products: Optional[list[dict[str, Any]]] = None
    creation_pattern: Optional[str] = Field(default=None, alias="creationPattern")

class OrderDeleteRequest(BaseModel):
    # ids are validated by parse_order_ids so a bad batch is a 400, not a 422
    order_ids: Optional[list[Any]] = Field(default=None, alias="orderIds")

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class CreatedOrder(CamelModel):
    id: int
    order_number: str
    reference_number: str
    tracking_id: Optional[str] = None
    courier_status: Optional[str] = None

class OrderCreateResponse(CamelModel):
    success: bool = True
    order: CreatedOrder

class DeletedOrder(CamelModel):
    id: int
    name: str
    mobile: str
    tracking_id: Optional[str] = None

class CourierCancellation(CamelModel):
    order_id: int
    waybill: str
    success: bool
    message: Optional[str] = None

class InventoryRestoration(CamelModel):
    order_id: int
    success: bool
    restored_items: Optional[int] = None
    error: Optional[str] = None

class OrderDeleteResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    deleted_count: int
    deleted_orders: list[DeletedOrder]
    courier_cancellations: list[CourierCancellation]
    inventory_restorations: list[InventoryRestoration]

class OrderRead(CamelModel):
    id: int
    order_number: str
    client_id: str
    reference_number: str
    name: str
    mobile: str
    phone: Optional[str] = None
    address: str
    city: str
    state: str
    country: str
    pincode: str
    courier_service: str
    pickup_location: str
    package_value: float
    weight: float
    total_items: int
    is_cod: bool
    cod_amount: Optional[float] = None
    reseller_name: Optional[str] = None
    reseller_mobile: Optional[str] = None
    tracking_id: Optional[str] = None
    tracking_status: Optional[str] = None
    delhivery_waybill_number: Optional[str] = None
    delhivery_order_id: Optional[str] = None
    delhivery_api_status: Optional[str] = None
    created_by: str
    sub_group: Optional[str] = None
    products: Optional[list[Any]] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("products", mode="before")
    @classmethod
    def decode_products(cls, value):
        if not value or not isinstance(value, str):
            return value or None
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        return decoded if isinstance(decoded, list) else None

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

class OrderListResponse(CamelModel):
    orders: list[OrderRead]
    pagination: Pagination
