'''
API endpoints for managing tutor availability windows.
'''
from typing import Annotated, Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, Response, status

from ..database import models as db_models
from ..models import availability as availability_models
from ..services.security import verify_token_and_get_user
from ..services.availability_service import AvailabilityService


class AvailabilityAPI:
    """
    CRUD endpoints for the current tutor's availability windows.
    Admins act on behalf of a tutor by passing `tutor_id`.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/availability",
            tags=["Availability"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_windows,
                methods=["GET"],
                response_model=List[availability_models.AvailabilityWindowRead])
        self.router.add_api_route(
                "/",
                self.create_window,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=availability_models.AvailabilityWindowRead)
        self.router.add_api_route(
                "/{window_id}",
                self.get_window,
                methods=["GET"],
                response_model=availability_models.AvailabilityWindowRead)
        self.router.add_api_route(
                "/{window_id}",
                self.update_window,
                methods=["PATCH"],
                response_model=availability_models.AvailabilityWindowRead)
        self.router.add_api_route(
                "/{window_id}",
                self.delete_window,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

    async def list_windows(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        """
        Lists the availability windows of the current tutor.
        """
        return await availability_service.list_windows_for_api(current_user.id)

    async def create_window(
        self,
        window_data: availability_models.AvailabilityWindowCreateHint,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> Any:
        """
        Creates a recurring (`kind: recurring`) or one-off (`kind: date_specific`) window.
        """
        return await availability_service.create_window_for_api(window_data, current_user)

    async def get_window(
        self,
        window_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> Any:
        return await availability_service.get_window_for_api(window_id)

    async def update_window(
        self,
        window_id: UUID,
        update_data: availability_models.AvailabilityWindowUpdate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> Any:
        """
        Partially updates a window. Rejected with 409 while a scheduled
        appointment is booked inside it.
        """
        return await availability_service.update_window_for_api(window_id, update_data, current_user)

    async def delete_window(
        self,
        window_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        await availability_service.delete_window(window_id, current_user)
        return Response(status_code=status.HTTP_204_NO_CONTENT)


# Instantiate the class and export its router
availability_api = AvailabilityAPI()
router = availability_api.router
