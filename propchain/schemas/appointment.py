"""Appointment Schemas - viewing appointment request and response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AppointmentCreate(BaseModel):
    property_id: UUID
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(min_length=3, max_length=50)
    appointment_time: datetime
    duration: str | None = Field(None, max_length=50)
    purpose: str | None = Field(None, max_length=200)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: UUID
    name: str
    email: str
    phone: str
    appointment_time: datetime
    duration: str | None = None
    purpose: str | None = None
    created_at: datetime
