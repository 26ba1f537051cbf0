"""
Transaction API endpoints.

Transactions are created under their portfolio (POST /portfolios/{id}/transactions).
- GET /transactions/{id}: one transaction with asset details
- PUT /transactions/{id}: edit note, date or status
- DELETE /transactions/{id}: delete and reverse the balance effect
"""
from fastapi import APIRouter, Depends

from moonfolio.app.api.v1.dependencies import get_ledger_service, get_valuation_service
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.common import BaseDeleteResult, ErrorResponse
from moonfolio.app.schemas.transactions import TXUpdateItem, TXWithDetails
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.valuation_service import ValuationService

logger = get_logger(__name__)

tx_router = APIRouter(prefix="/transactions", tags=["TX (Transactions)"])

NOT_FOUND = {404: {"model": ErrorResponse}}


@tx_router.get("/{transaction_id}", response_model=TXWithDetails, responses=NOT_FOUND)
async def get_transaction(
    transaction_id: int,
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> TXWithDetails:
    return await valuation.get_transaction_with_details(transaction_id)


@tx_router.put("/{transaction_id}", response_model=TXWithDetails, responses=NOT_FOUND)
async def update_transaction(
    transaction_id: int,
    item: TXUpdateItem,
    ledger: LedgerService = Depends(get_ledger_service),
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> TXWithDetails:
    """Only note, date and status are editable; amount, price and type are rejected by the schema."""
    await ledger.update_transaction(transaction_id, item)
    return await valuation.get_transaction_with_details(transaction_id)


@tx_router.delete("/{transaction_id}", response_model=BaseDeleteResult,
                  responses={**NOT_FOUND, 422: {"model": ErrorResponse}})
async def delete_transaction(
    transaction_id: int,
    ledger: LedgerService = Depends(get_ledger_service),
    ) -> BaseDeleteResult:
    """
    Delete a transaction, applying the inverse of its balance change.

    Rejected (422) when the units it added are no longer there.
    """
    await ledger.delete_transaction(transaction_id)
    return BaseDeleteResult(id=transaction_id, message="Transaction deleted and reversed")
