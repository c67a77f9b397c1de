"""Modelos Pydantic para pagos de tickets y media passes"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional


class TicketPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[int] = None  # centavos; se valida contra TICKET_MIN_AMOUNT en el servicio
    affiliate_code: Optional[str] = Field(default=None, alias="affiliateCode")


class MediaPassPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pass_type: Literal["30", "150"] = Field(alias="passType")
    name: str = Field(min_length=1)
    instagram_handle: str = Field(alias="instagramHandle", min_length=1)


class CheckoutResponse(BaseModel):
    url: str


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    user_email: Optional[str] = Field(default=None, alias="userEmail")


class VerifyPaymentResponse(BaseModel):
    success: bool
    message: str
    ticket_id: str
    qr_code_token: Optional[str] = None


class RecoveredTicket(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    ticket_id: str = Field(alias="ticketId")
    amount: Optional[int] = None


class RecoverTicketsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    tickets_created: int = Field(alias="ticketsCreated")
    created_tickets: List[RecoveredTicket] = Field(default_factory=list, alias="createdTickets")


class RecoveredMediaPass(BaseModel):
    id: str
    pass_type: Optional[str] = None
    amount: Optional[int] = None
    status: Optional[str] = None
    valid_until: Optional[datetime] = None
    qr_code_token: Optional[str] = None


class RecoverMediaPassesResponse(BaseModel):
    success: bool
    created_count: int
    created_media_passes: List[RecoveredMediaPass] = []
