"""Modelos Pydantic para validación de tickets en puerta"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class TicketValidationRequest(BaseModel):
    qr_code_token: str = Field(min_length=1)
    validator_name: Optional[str] = None


class PublicVerificationRequest(BaseModel):
    qr_code_token: str = Field(min_length=1)


class TicketValidationResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
    type: Optional[str] = None
    ticket_info: Optional[Dict[str, Any]] = None
    subscription_info: Optional[Dict[str, Any]] = None
    media_pass_info: Optional[Dict[str, Any]] = None
