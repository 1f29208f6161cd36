"""Request and response models for the negotiation API"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class NegotiationCreate(BaseModel):
    """Model for opening a new negotiation"""
    buyer_id: str = Field(alias="buyerId")
    listing_id: str = Field(alias="listingId")
    message: Optional[str] = None
    template_id: Optional[str] = Field(default=None, alias="templateId")

    class Config:
        populate_by_name = True


class OfferRequest(BaseModel):
    """A price proposal (with optional note) or, without a price, a message"""
    actor: str
    price: Optional[int] = None
    message: Optional[str] = None
    template_id: Optional[str] = Field(default=None, alias="templateId")

    class Config:
        populate_by_name = True


class MessageRequest(BaseModel):
    actor: str
    message: Optional[str] = None
    template_id: Optional[str] = Field(default=None, alias="templateId")

    class Config:
        populate_by_name = True


class ActorRequest(BaseModel):
    actor: str


class AcceptRequest(BaseModel):
    actor: str
    price: Optional[int] = None


class ReportRequest(BaseModel):
    actor: str
    reason: str


class RedeemRequest(BaseModel):
    """Identifiers the code must be bound to"""
    listing_id: str = Field(alias="listingId")
    buyer_id: str = Field(alias="buyerId")

    class Config:
        populate_by_name = True


class OfferView(BaseModel):
    """Single offer as seen by one participant"""
    sequence: int
    author: str
    kind: str
    price: Optional[int] = None
    text: str
    timestamp: datetime
    flagged: bool = False
    violations: List[str] = Field(default_factory=list)


class ReportView(BaseModel):
    reporter: str
    reason: str
    timestamp: datetime


class NegotiationView(BaseModel):
    """Negotiation with its full offer history"""
    negotiation_id: str
    listing_id: str
    seller_id: str
    buyer_id: str
    currency: str
    original_price: int
    floor_price: int
    current_price: int
    state: str
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    offers: List[OfferView] = Field(default_factory=list)
    agreed_price: Optional[int] = None
    closed_by: Optional[str] = None
    closed_at: Optional[datetime] = None
    reports: List[ReportView] = Field(default_factory=list)
    version: int = 0


class DiscountCodeView(BaseModel):
    """Discount code with its computed status"""
    code: str
    negotiation_id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    original_price: int
    redemption_price: int
    discount_amount: int
    discount_percentage: int
    currency: str
    issued_at: datetime
    expires_at: datetime
    state: str
    redeemed_at: Optional[datetime] = None


class ActionResponse(BaseModel):
    """Result of a negotiation action"""
    negotiation: NegotiationView
    applied: bool = True
    discount_code: Optional[DiscountCodeView] = None


class RedemptionView(BaseModel):
    code: str
    negotiation_id: str
    listing_id: str
    buyer_id: str
    original_price: int
    redemption_price: int
    discount_amount: int
    currency: str
    redeemed_at: datetime


class TemplateView(BaseModel):
    id: str
    content: str
