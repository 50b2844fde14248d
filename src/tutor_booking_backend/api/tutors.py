'''
Public, read-only endpoints about a tutor: availability and free slots.
'''
import datetime
from typing import Annotated, Any, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from ..database import models as db_models
from ..models import availability as availability_models
from ..services.security import verify_token_and_get_user
from ..services.availability_service import AvailabilityService
from ..services.slot_service import SlotService


class TutorsAPI:
    """
    Endpoints students use to find a time with a tutor.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/tutors",
            tags=["Tutors"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/{tutor_id}/availability",
                self.list_availability,
                methods=["GET"],
                response_model=List[availability_models.AvailabilityWindowRead])
        self.router.add_api_route(
                "/{tutor_id}/slots",
                self.list_slots,
                methods=["GET"],
                response_model=List[availability_models.SlotRead])

    async def list_availability(
        self,
        tutor_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        return await availability_service.list_windows_for_api(tutor_id)

    async def list_slots(
        self,
        tutor_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        slot_service: Annotated[SlotService, Depends(SlotService)],
        date: Annotated[datetime.date, Query(description="Calendar date in the tutor's timezone.")],
        duration_minutes: Annotated[Optional[int], Query(gt=0)] = None,
        step_minutes: Annotated[Optional[int], Query(gt=0)] = None
    ) -> List[Any]:
        """
        Free, bookable slots of the tutor on `date`, ordered by start time (UTC).
        """
        return await slot_service.get_available_slots_for_api(tutor_id, date, duration_minutes, step_minutes)


# Instantiate the class and export its router
tutors_api = TutorsAPI()
router = tutors_api.router
