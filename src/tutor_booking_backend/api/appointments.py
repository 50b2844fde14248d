'''
API endpoints for booking and managing appointments.
'''
from typing import Annotated, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, status
from pydantic import AwareDatetime

from ..database import models as db_models
from ..models import appointment as appointment_models
from ..services.security import verify_token_and_get_user
from ..services.booking_service import BookingService


class AppointmentsAPI:
    """
    A class to encapsulate the appointment lifecycle endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/appointments",
            tags=["Appointments"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_appointments,
                methods=["GET"],
                response_model=List[appointment_models.AppointmentRead])
        self.router.add_api_route(
                "/",
                self.book_appointment,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=appointment_models.AppointmentRead)
        self.router.add_api_route(
                "/{appointment_id}",
                self.get_appointment,
                methods=["GET"],
                response_model=appointment_models.AppointmentRead)
        self.router.add_api_route(
                "/{appointment_id}/cancel",
                self.cancel_appointment,
                methods=["POST"],
                response_model=appointment_models.AppointmentRead)
        self.router.add_api_route(
                "/{appointment_id}/outcome",
                self.mark_outcome,
                methods=["POST"],
                response_model=appointment_models.AppointmentRead)
        self.router.add_api_route(
                "/{appointment_id}/reschedule",
                self.reschedule_appointment,
                methods=["POST"],
                response_model=appointment_models.AppointmentRead)

    async def list_appointments(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)],
        start: Optional[AwareDatetime] = None,
        end: Optional[AwareDatetime] = None
    ):
        """
        Lists the current user's appointments, optionally only those
        intersecting [start, end). Admins see all appointments.
        """
        return await booking_service.list_appointments_for_api(current_user, start, end)

    async def book_appointment(
        self,
        booking_data: appointment_models.AppointmentCreate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ):
        """
        Books a slot with a tutor and debits its length from the student's hours.
        A 409 with `"retryable": true` means the slot was just taken.
        """
        return await booking_service.book_for_api(booking_data, current_user)

    async def get_appointment(
        self,
        appointment_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ):
        return await booking_service.get_appointment_for_api(appointment_id, current_user)

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ):
        """
        Cancels a scheduled appointment. Students get their hours back only
        when cancelling with enough notice.
        """
        return await booking_service.cancel_for_api(appointment_id, current_user)

    async def mark_outcome(
        self,
        appointment_id: UUID,
        outcome_data: appointment_models.AppointmentOutcome,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ):
        """
        Records whether a scheduled appointment took place.
        **Restricted to the appointment's tutor and admins.**
        """
        return await booking_service.mark_outcome_for_api(appointment_id, outcome_data, current_user)

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        reschedule_data: appointment_models.AppointmentReschedule,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ):
        return await booking_service.reschedule_for_api(appointment_id, reschedule_data, current_user)


# Instantiate the class and export its router
appointments_api = AppointmentsAPI()
router = appointments_api.router
