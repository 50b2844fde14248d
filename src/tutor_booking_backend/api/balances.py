'''
API endpoints for hours balances and their ledger.
'''
from typing import Annotated, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, status

from ..database import models as db_models
from ..models import balance as balance_models
from ..services.security import verify_token_and_get_user
from ..services.balance_service import BalanceLedger


class BalancesAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/balances",
            tags=["Balances"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/",
                self.list_balances,
                methods=["GET"],
                response_model=List[balance_models.BalanceRead])
        self.router.add_api_route(
                "/purchases",
                self.record_purchase,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=balance_models.BalanceRead)
        self.router.add_api_route(
                "/{balance_id}/entries",
                self.list_entries,
                methods=["GET"],
                response_model=List[balance_models.LedgerEntryRead])

    async def list_balances(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        ledger: Annotated[BalanceLedger, Depends(BalanceLedger)],
        student_id: Optional[UUID] = None
    ):
        """
        Lists the current student's balances. Admins may filter by `student_id`.
        """
        return await ledger.list_balances_for_api(current_user, student_id)

    async def list_entries(
        self,
        balance_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        ledger: Annotated[BalanceLedger, Depends(BalanceLedger)]
    ):
        return await ledger.list_entries_for_api(balance_id, current_user)

    async def record_purchase(
        self,
        purchase_data: balance_models.HoursPurchaseCreate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        ledger: Annotated[BalanceLedger, Depends(BalanceLedger)]
    ):
        """
        Credits purchased hours to a student's balance.
        **This endpoint is restricted to Admins only.**
        """
        return await ledger.add_purchased_hours_for_api(purchase_data, current_user)


# Instantiate the class and export its router
balances_api = BalancesAPI()
router = balances_api.router
