"""
Pydantic Schemas for Request/Response Validation

Author: Khalil_Bannouri
Version: 1.0.0
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from smartqueue.models import TokenStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class CanteenCreate(BaseModel):
    """Request schema for registering a canteen."""
    name: str = Field(..., min_length=1, max_length=100, examples=["North Block Canteen"])
    campus: str = Field(..., min_length=1, max_length=100, examples=["Main Campus"])

    @field_validator("name", "campus")
    @classmethod
    def strip_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ScanResolveRequest(BaseModel):
    """Decoded QR text handed over by the scanner."""
    payload: str = Field(..., max_length=2048, examples=["http://localhost:8001/?canteenId=3f9a1c2b7d4e"])


class TokenCreate(BaseModel):
    """Request schema for placing an order."""
    food_item: str = Field(..., min_length=1, max_length=100, examples=["Vada Pav"])

    @field_validator("food_item")
    @classmethod
    def strip_food_item(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class TransitionRequest(BaseModel):
    """Optional staff note attached to a completion or cancellation."""
    reasoning: Optional[str] = Field(None, max_length=300)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class CanteenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    campus: str
    theme_tag: str
    created_at: datetime


class CanteenQrResponse(BaseModel):
    canteen_id: str
    payload: str


class ScanResolveResponse(BaseModel):
    resolved: bool
    canteen_id: Optional[str] = None


class TokenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    canteen_id: str
    token_number: str
    food_item: str
    status: TokenStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    estimated_wait_minutes: int
    estimation_reasoning: Optional[str] = None


class QueueResponse(BaseModel):
    canteen_id: str
    waiting: int
    tokens: list[TokenResponse]


class PositionResponse(BaseModel):
    token_id: str
    position: int
    status: Optional[TokenStatus] = None


class StatsResponse(BaseModel):
    total_orders_today: int
    active_queue_length: int
    average_wait_minutes: float
    peak_hour: str
    completed_today: int
    cancelled_today: int


class HourlyTrafficPoint(BaseModel):
    hour: int
    label: str
    orders: int


class InsightsResponse(BaseModel):
    provider: str
    text: str


class MenuItemResponse(BaseModel):
    name: str
    price: int
    category: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store: str
    redis: str
    predictor: str
    timestamp: datetime
