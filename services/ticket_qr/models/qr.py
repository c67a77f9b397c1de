"""Modelos Pydantic para generación de códigos QR"""
from pydantic import BaseModel
from typing import List, Literal, Optional


class GenerateQRRequest(BaseModel):
    ticket_id: Optional[str] = None
    subscription_id: Optional[str] = None
    type: Optional[Literal["ticket", "subscription"]] = None  # se infiere del id presente


class QRCodeResponse(BaseModel):
    qr_code_token: str
    qr_code_data: Optional[str] = None
    type: str


class BackfillResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    fixed_count: int = 0
    errors: Optional[List[str]] = None
    error: Optional[str] = None
