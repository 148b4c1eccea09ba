import logging

from fastapi import APIRouter, Depends, Request, status

from expense_api.core.config import Settings
from expense_api.core.errors import NotFoundError
from expense_api.deps import get_ledger, get_settings, store_errors
from expense_api.models.transactions import (
    DeleteTransactionResponse,
    TransactionCreateRequest,
    TransactionItem,
    TransactionSummary,
    UserTransactionCount,
)
from expense_api.services.ledger import LedgerService, build_new_transaction, parse_transaction_id
from expense_api.services.requester import extract_requester_id, require_requester

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("")
async def transactions_status():
    return {"status": "ok"}


@router.get("/__debug/users", response_model=list[UserTransactionCount])
async def debug_user_counts(
    settings: Settings = Depends(get_settings),
    ledger: LedgerService = Depends(get_ledger),
):
    if settings.is_production:
        raise NotFoundError()
    with store_errors("Failed to query debug info"):
        return await ledger.count_by_user()


@router.get("/me", response_model=list[TransactionItem])
async def list_for_requester(
    req: Request,
    settings: Settings = Depends(get_settings),
    ledger: LedgerService = Depends(get_ledger),
):
    user_id = require_requester(req, strict=settings.is_production)
    with store_errors("Failed to get transactions for requester"):
        return await ledger.list_for_user(user_id)


@router.get("/summary/me", response_model=TransactionSummary)
async def summary_for_requester(
    req: Request,
    settings: Settings = Depends(get_settings),
    ledger: LedgerService = Depends(get_ledger),
):
    user_id = require_requester(req, strict=settings.is_production)
    with store_errors("Failed to get summary for requester"):
        return await ledger.summarize(user_id)


@router.get("/summary/{user_id}", response_model=TransactionSummary)
async def summary_by_user(user_id: str, ledger: LedgerService = Depends(get_ledger)):
    with store_errors("Failed to get summary"):
        return await ledger.summarize(user_id)


@router.get("/{user_id}", response_model=list[TransactionItem])
async def list_by_user(user_id: str, ledger: LedgerService = Depends(get_ledger)):
    with store_errors("Failed to get transactions"):
        return await ledger.list_for_user(user_id)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TransactionItem)
async def create_transaction(
    req: Request,
    payload: TransactionCreateRequest,
    settings: Settings = Depends(get_settings),
    ledger: LedgerService = Depends(get_ledger),
):
    tx = build_new_transaction(payload, requester_id=extract_requester_id(req.headers))
    if not settings.is_production:
        logger.debug("create transaction: body user_id=%r resolved user_id=%r", payload.user_id, tx.user_id)
    with store_errors("Failed to create transaction"):
        return await ledger.create(tx)


@router.post("/me", status_code=status.HTTP_201_CREATED, response_model=TransactionItem)
async def create_for_requester(
    req: Request,
    payload: TransactionCreateRequest,
    settings: Settings = Depends(get_settings),
    ledger: LedgerService = Depends(get_ledger),
):
    user_id = require_requester(req, strict=settings.is_production)
    tx = build_new_transaction(payload.model_copy(update={"user_id": user_id}))
    with store_errors("Failed to create transaction"):
        return await ledger.create(tx)


@router.delete("/{tx_id}", response_model=DeleteTransactionResponse)
async def delete_transaction(
    tx_id: str,
    req: Request,
    settings: Settings = Depends(get_settings),
    ledger: LedgerService = Depends(get_ledger),
):
    transaction_id = parse_transaction_id(tx_id)
    owner_id = None
    if settings.delete_requires_owner:
        owner_id = require_requester(req, strict=settings.is_production)
    with store_errors("Failed to delete transaction"):
        deleted = await ledger.delete(transaction_id, owner_id=owner_id)
    if deleted is None:
        raise NotFoundError("Transaction not found")
    return DeleteTransactionResponse(deleted=deleted)
