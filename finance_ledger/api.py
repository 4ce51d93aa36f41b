import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .calculations import (
    COMMISSION_RATE, DUE_AMOUNT, GATEWAY_FEE_PERCENTAGE, GST_PERCENTAGE, MIN_WITHDRAWAL_AMOUNT,
)
from .config import settings
from .errors import (
    LedgerServiceError, NotFoundError, InvalidAmountError, BelowMinimumWithdrawalError,
)
from .models import (
    ClearDueRequest, CommissionRecord, CommissionStatus, CreateReferralRewardRequest,
    CreateWithdrawalRequest, DueRecord, DueResponse, DueStatus, EventAccount, EventResponse,
    FailWithdrawalRequest, FinanceSummary, JoinEventRequest, PlatformRevenueResponse,
    ReferralRewardResponse, RegisterEventRequest, TransactionHistoryResponse, TransactionType,
    WithdrawalQuote, WithdrawalQuoteRequest, WithdrawalRecord, WithdrawalResponse,
)
from .service import LedgerService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.DESCRIPTION,
    version=settings.PROJECT_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService()


def get_ledger_service() -> LedgerService:
    return ledger_service


def _http_error(e: LedgerServiceError) -> HTTPException:
    if isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, (InvalidAmountError, BelowMinimumWithdrawalError)):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_409_CONFLICT
    return HTTPException(status_code=code, detail={"code": e.code, "message": str(e)})


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "event-finance-ledger", "environment": settings.ENVIRONMENT}


@app.get("/config", tags=["System"])
def finance_config():
    return {
        "due_amount": DUE_AMOUNT,
        "commission_rate": COMMISSION_RATE,
        "min_withdrawal_amount": MIN_WITHDRAWAL_AMOUNT,
        "gateway_fee_percentage": GATEWAY_FEE_PERCENTAGE,
        "gst_percentage": GST_PERCENTAGE,
        "currency": settings.DEFAULT_CURRENCY,
    }


@app.post("/quotes/withdrawal", response_model=WithdrawalQuote, tags=["Withdrawals"])
def quote_withdrawal(
    request: WithdrawalQuoteRequest, service: LedgerService = Depends(get_ledger_service)
) -> WithdrawalQuote:
    try:
        return service.quote(request.amount)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED, tags=["Events"])
def register_event(
    request: RegisterEventRequest, service: LedgerService = Depends(get_ledger_service)
) -> EventResponse:
    try:
        return service.register_event(request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/events/{event_id}", response_model=EventAccount, tags=["Events"])
def get_event(event_id: UUID, service: LedgerService = Depends(get_ledger_service)) -> EventAccount:
    try:
        return service.get_event(event_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/events/{event_id}/join", response_model=DueResponse, status_code=status.HTTP_201_CREATED, tags=["Events"])
def join_event(
    event_id: UUID, request: JoinEventRequest, service: LedgerService = Depends(get_ledger_service)
) -> DueResponse:
    try:
        return service.join_event(event_id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/events/{event_id}/complete", response_model=EventResponse, tags=["Events"])
def complete_event(event_id: UUID, service: LedgerService = Depends(get_ledger_service)) -> EventResponse:
    try:
        return service.complete_event(event_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/dues/{due_id}", response_model=DueRecord, tags=["Dues"])
def get_due(due_id: UUID, service: LedgerService = Depends(get_ledger_service)) -> DueRecord:
    try:
        return service.get_due(due_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/dues/{due_id}/clear", response_model=DueResponse, tags=["Dues"])
def clear_due(
    due_id: UUID, request: ClearDueRequest, service: LedgerService = Depends(get_ledger_service)
) -> DueResponse:
    try:
        return service.clear_due(due_id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/commissions/{commission_id}", response_model=CommissionRecord, tags=["Commissions"])
def get_commission(commission_id: UUID, service: LedgerService = Depends(get_ledger_service)) -> CommissionRecord:
    try:
        return service.get_commission(commission_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post(
    "/users/{user_id}/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Withdrawals"],
)
def request_withdrawal(
    user_id: UUID, request: CreateWithdrawalRequest, service: LedgerService = Depends(get_ledger_service)
) -> WithdrawalResponse:
    try:
        return service.request_withdrawal(user_id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/users/{user_id}/withdrawals/quote", response_model=WithdrawalQuote, tags=["Withdrawals"])
def quote_user_withdrawal(
    user_id: UUID, amount: Optional[str] = None, service: LedgerService = Depends(get_ledger_service)
) -> WithdrawalQuote:
    try:
        return service.quote_withdrawal(user_id, amount)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/withdrawals/{withdrawal_id}", response_model=WithdrawalRecord, tags=["Withdrawals"])
def get_withdrawal(withdrawal_id: UUID, service: LedgerService = Depends(get_ledger_service)) -> WithdrawalRecord:
    try:
        return service.get_withdrawal(withdrawal_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/withdrawals/{withdrawal_id}/process", response_model=WithdrawalResponse, tags=["Withdrawals"])
def process_withdrawal(
    withdrawal_id: UUID, service: LedgerService = Depends(get_ledger_service)
) -> WithdrawalResponse:
    try:
        return service.mark_withdrawal_processing(withdrawal_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/withdrawals/{withdrawal_id}/complete", response_model=WithdrawalResponse, tags=["Withdrawals"])
def complete_withdrawal(
    withdrawal_id: UUID, service: LedgerService = Depends(get_ledger_service)
) -> WithdrawalResponse:
    try:
        return service.complete_withdrawal(withdrawal_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/withdrawals/{withdrawal_id}/fail", response_model=WithdrawalResponse, tags=["Withdrawals"])
def fail_withdrawal(
    withdrawal_id: UUID, request: FailWithdrawalRequest, service: LedgerService = Depends(get_ledger_service)
) -> WithdrawalResponse:
    try:
        return service.fail_withdrawal(withdrawal_id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post(
    "/referral-rewards",
    response_model=ReferralRewardResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Rewards"],
)
def credit_referral_reward(
    request: CreateReferralRewardRequest, service: LedgerService = Depends(get_ledger_service)
) -> ReferralRewardResponse:
    try:
        return service.credit_referral_reward(request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/users/{user_id}/summary", response_model=FinanceSummary, tags=["Users"])
def get_user_summary(user_id: UUID, service: LedgerService = Depends(get_ledger_service)) -> FinanceSummary:
    return service.get_summary(user_id)


@app.get("/users/{user_id}/dues", response_model=list[DueRecord], tags=["Users"])
def list_user_dues(
    user_id: UUID, status: Optional[DueStatus] = None, service: LedgerService = Depends(get_ledger_service)
) -> list[DueRecord]:
    return service.list_dues(user_id, status)


@app.get("/users/{user_id}/commissions", response_model=list[CommissionRecord], tags=["Users"])
def list_user_commissions(
    user_id: UUID, status: Optional[CommissionStatus] = None, service: LedgerService = Depends(get_ledger_service)
) -> list[CommissionRecord]:
    return service.list_commissions(user_id, status)


@app.get("/users/{user_id}/withdrawals", response_model=list[WithdrawalRecord], tags=["Users"])
def list_user_withdrawals(
    user_id: UUID, service: LedgerService = Depends(get_ledger_service)
) -> list[WithdrawalRecord]:
    return service.list_withdrawals(user_id)


@app.get("/users/{user_id}/transactions", response_model=TransactionHistoryResponse, tags=["Users"])
def get_user_transactions(
    user_id: UUID,
    limit: int = settings.HISTORY_PAGE_LIMIT,
    offset: int = 0,
    type: Optional[TransactionType] = None,
    service: LedgerService = Depends(get_ledger_service),
) -> TransactionHistoryResponse:
    return service.get_transaction_history(user_id, limit, offset, type)


@app.get("/platform/revenue", response_model=PlatformRevenueResponse, tags=["Platform"])
def get_platform_revenue(service: LedgerService = Depends(get_ledger_service)) -> PlatformRevenueResponse:
    return service.get_platform_revenue()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
