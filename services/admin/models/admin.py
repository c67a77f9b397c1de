"""Modelos Pydantic para administración de tickets"""
from pydantic import BaseModel, ConfigDict, Field


class DeleteTicketRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ticket_id: str = Field(alias="ticketId", min_length=1)


class DeleteTicketResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    ticket_id: str = Field(alias="ticketId")
