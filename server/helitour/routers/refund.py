"""Refund router for admin refunds and refund status reads."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import AdminIdentity, Identity, IdempotencyKey, RequiredIdentity
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Money
from ..schemas.refund import IssueRefundRequest, IssueRefundResponse, RefundStatusRequest, RefundSummary
from ..services.refund_service import RefundService
from ..services.refund_service import RefundSummary as RefundSummaryModel
from .booking import handle_idempotent_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["refund"])

DB_DEPENDENCY = Depends(get_db)


def _convert_summary_to_schema(summary: RefundSummaryModel) -> RefundSummary:
    return RefundSummary(
        booking_id=summary.booking_id,
        status=summary.status,
        amount=Money.of(summary.amount),
        reason=summary.reason,
        date=summary.date,
        total_price=Money.of(summary.total_price),
        remaining_amount=Money.of(summary.remaining_amount),
    )


@router.post("/refund", response_model=IssueRefundResponse)
async def issue_refund(
    request: IssueRefundRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = AdminIdentity,
    idempotency_key: Optional[str] = IdempotencyKey
) -> JSONResponse:
    """
    Refund a paid booking (admin only).

    Omitting the amount refunds the remaining balance. The booking is
    cancelled and a refund transaction is added to the ledger. Supplying an
    Idempotency-Key header makes retries replay the first outcome.
    """
    refund_service = RefundService(db)

    async def operation():
        result = await refund_service.issue_refund(request, identity)
        response_data = IssueRefundResponse(
            refund=_convert_summary_to_schema(result.summary),
            refunded_now=Money.of(result.refunded_now),
            transaction_id=result.transaction.transaction_id,
            booking_status=result.booking.status,
            payment_status=result.booking.payment_status,
        )
        return 200, response_data.model_dump(mode="json")

    try:
        return await handle_idempotent_operation(
            operation="booking/refund",
            idempotency_key=idempotency_key,
            identity=identity,
            request_body=request.model_dump(mode="json"),
            operation_func=operation,
            db=db
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in refund",
            extra={"booking_id": request.booking_id, "amount": request.amount, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/refund-status", response_model=RefundSummary)
async def refund_status(
    request: RefundStatusRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """Refund state of a booking, for its owner or an admin."""
    refund_service = RefundService(db)

    try:
        summary = await refund_service.get_refund_status(request.booking_id, identity)
        return JSONResponse(
            status_code=200,
            content=_convert_summary_to_schema(summary).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in refund status",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
