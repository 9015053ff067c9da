"""Ledger router."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Identity, RequiredIdentity
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Money
from ..schemas.refund import ListTransactionsRequest, ListTransactionsResponse, Transaction
from ..services.refund_service import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/transaction", tags=["transaction"])

DB_DEPENDENCY = Depends(get_db)


def _convert_transaction_to_schema(transaction_model) -> Transaction:
    return Transaction(
        id=str(transaction_model.id),
        transaction_id=transaction_model.transaction_id,
        user_id=transaction_model.user_id,
        booking_id=str(transaction_model.booking_id) if transaction_model.booking_id else None,
        type=transaction_model.type,
        amount=Money.of(transaction_model.amount),
        status=transaction_model.status,
        payment_method=transaction_model.payment_method,
        reference=transaction_model.reference,
        created_at=transaction_model.created_at,
    )


@router.post("/list", response_model=ListTransactionsResponse)
async def list_transactions(
    request: ListTransactionsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """Ledger entries; clients see their own, admins see all."""
    refund_service = RefundService(db)

    try:
        transactions = await refund_service.list_transactions(identity, booking_id=request.booking_id)
        response_data = ListTransactionsResponse(
            items=[_convert_transaction_to_schema(t) for t in transactions]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in transaction listing",
            extra={"actor_id": identity.user_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
