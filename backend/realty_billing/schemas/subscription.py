from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class SubscriptionRequest(BaseModel):
    tariff_id: int
    category_id: int
    location_id: int
    notes: Optional[str] = Field(None, max_length=1000)


class ExtendRequest(BaseModel):
    tariff_id: int
    notes: Optional[str] = Field(None, max_length=1000)


class ToggleRequest(BaseModel):
    enabled: bool


class AdminCreateSubscription(BaseModel):
    user_id: int
    tariff_id: int
    category_id: int
    location_id: int
    auto_activate: bool = False
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)
    duration_hours: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=0)


class AdminActivate(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)
    duration_hours: Optional[int] = Field(None, gt=0)


class AdminExtend(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    price: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)
    duration_hours: Optional[int] = Field(None, gt=0)


class AdminCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class AdminUpdateTariff(BaseModel):
    tariff_id: int
    price: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)


class SubscriptionInfo(BaseModel):
    id: int
    user_id: int
    tariff_id: int
    category_id: int
    location_id: int
    price_paid: Decimal
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str
    is_enabled: bool
    payment_method: Optional[str] = None
    admin_notes: Optional[str] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    requested_tariff_id: Optional[int] = None

    model_config = {"from_attributes": True}


class HistoryEntryInfo(BaseModel):
    id: int
    user_id: int
    subscription_id: Optional[int] = None
    action: str
    tariff_name: str
    category_name: str
    location_name: str
    price_paid: Decimal
    action_date: datetime
    notes: Optional[str] = None

    model_config = {"from_attributes": True}
