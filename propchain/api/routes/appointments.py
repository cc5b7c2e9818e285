"""Appointment Routes - book and list viewing appointments for a listing.

Invariants:
    - An appointment always references an existing listing (404 otherwise)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propchain.api.routes.listings import get_listing_or_404
from propchain.infrastructure.database import get_db
from propchain.models.appointment import Appointment
from propchain.schemas.appointment import AppointmentCreate, AppointmentResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/appointments", tags=["appointments"])


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(body: AppointmentCreate, db: AsyncSession = Depends(get_db)):
    await get_listing_or_404(body.property_id, db)
    appointment = Appointment(**body.model_dump())
    db.add(appointment)
    await db.commit()
    await db.refresh(appointment)
    logger.info("Appointment booked", extra={"listing_id": str(body.property_id)})
    return appointment


@router.get("/listing/{listing_id}", response_model=list[AppointmentResponse])
async def list_appointments(listing_id: UUID, db: AsyncSession = Depends(get_db)):
    await get_listing_or_404(listing_id, db)
    result = await db.execute(
        select(Appointment)
        .where(Appointment.property_id == listing_id)
        .order_by(Appointment.appointment_time.asc()),
    )
    return result.scalars().all()
