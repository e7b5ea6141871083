"""FastAPI JSON surface over :class:`moneypots.service.MoneyPots`.

Authentication happens upstream; the caller is named by the ``X-User-Id``
header. Serve with ``uvicorn moneypots.webapp:create_app --factory``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .exceptions import (
    DuplicateClaimError,
    ForbiddenError,
    InvalidTransitionError,
    MoneyPotsError,
    NotFoundError,
)
from .models import AutoApprovalRules, InterestRule, Jar, SettingsUpdate
from .service import MoneyPots
from .splits import SplitConfig

_STATUS_FOR_ERROR = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (InvalidTransitionError, 409),
    (DuplicateClaimError, 409),
)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class ManualTransactionBody(BaseModel):
    user_id: str
    kind: str
    amount: int
    from_jar: Optional[str] = None
    to_jar: Optional[str] = None
    description: str = ""
    reference: Optional[str] = None


class InterestRuleBody(BaseModel):
    rate: float = 0
    frequency: str = "monthly"
    jar: str = "save"


class AutoApprovalRulesBody(BaseModel):
    chore_claim_max: Optional[float] = None
    reward_claim_max: Optional[float] = None
    point_move_max: Optional[float] = None


class SettingsBody(BaseModel):
    currency: Optional[str] = None
    conversion_rate: Optional[float] = None
    show_denominations: Optional[bool] = None
    default_split: Optional[Dict[str, float]] = None
    interest_rule: Optional[InterestRuleBody] = None
    auto_approval_rules: Optional[AutoApprovalRulesBody] = None

    def to_update(self) -> SettingsUpdate:
        interest = self.interest_rule
        rules = self.auto_approval_rules
        return SettingsUpdate(
            currency=self.currency,
            conversion_rate=self.conversion_rate,
            show_denominations=self.show_denominations,
            default_split=SplitConfig.from_mapping(self.default_split) if self.default_split is not None else None,
            interest_rule=(
                InterestRule(rate=interest.rate, frequency=interest.frequency, jar=Jar.parse(interest.jar))
                if interest is not None
                else None
            ),
            auto_approval_rules=AutoApprovalRules(**rules.model_dump()) if rules is not None else None,
        )


class ClaimBody(BaseModel):
    claim_type: str = Field(alias="type")
    amount: Optional[int] = None
    from_jar: Optional[str] = None
    to_jar: Optional[str] = None
    chore_id: Optional[int] = None
    goal_id: Optional[int] = None
    reward_id: Optional[int] = None
    note: Optional[str] = None
    name: Optional[str] = None

    model_config = {"populate_by_name": True}


class DecisionBody(BaseModel):
    status: str
    comment: Optional[str] = None


class MessageBody(BaseModel):
    text: str = ""


def _dump(record: Any) -> Dict[str, Any]:
    return record.model_dump(mode="json")


def _dump_all(records) -> List[Dict[str, Any]]:
    return [_dump(record) for record in records]


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(bank: MoneyPots | None = None) -> FastAPI:
    bank = bank or MoneyPots()
    app = FastAPI(title="Money Pots")
    app.state.bank = bank

    @app.exception_handler(MoneyPotsError)
    async def money_pots_error_handler(request: Request, exc: MoneyPotsError) -> JSONResponse:
        status_code = next((code for kind, code in _STATUS_FOR_ERROR if isinstance(exc, kind)), 400)
        bank.logger.log(
            "http_error",
            path=request.url.path,
            status=status_code,
            error=type(exc).__name__,
            detail=str(exc),
        )
        return JSONResponse(status_code=status_code, content={"error": type(exc).__name__, "detail": str(exc)})

    @app.get("/transactions/{user_id}")
    def list_transactions(user_id: str, limit: Optional[int] = None, x_user_id: str = Header(...)):
        return _dump_all(bank.transactions(user_id, acting_user_id=x_user_id, limit=limit))

    @app.post("/transactions", status_code=201)
    def create_transaction(body: ManualTransactionBody, x_user_id: str = Header(...)):
        transaction = bank.record_manual_transaction(
            x_user_id,
            body.user_id,
            body.kind,
            body.amount,
            body.from_jar,
            body.to_jar,
            description=body.description,
            reference=body.reference,
        )
        return _dump(transaction)

    @app.patch("/users/{user_id}/settings")
    def update_settings(user_id: str, body: SettingsBody, x_user_id: str = Header(...)):
        account = bank.update_family_settings(user_id, body.to_update(), acting_user_id=x_user_id)
        return _dump(account)

    @app.post("/requests", status_code=201)
    def submit_request(body: ClaimBody, x_user_id: str = Header(...)):
        result = bank.submit_claim(
            x_user_id,
            body.claim_type,
            body.amount,
            from_jar=body.from_jar,
            to_jar=body.to_jar,
            chore_id=body.chore_id,
            goal_id=body.goal_id,
            reward_id=body.reward_id,
            note=body.note,
            name=body.name,
        )
        return {
            "auto_approved": result.auto_approved,
            "request": _dump(result.request) if result.request is not None else None,
            "transactions": _dump_all(result.transactions),
        }

    @app.put("/requests/{request_id}")
    def resolve_request(request_id: int, body: DecisionBody, x_user_id: str = Header(...)):
        request = bank.resolve_claim(request_id, x_user_id, body.status, body.comment)
        return _dump(request)

    @app.post("/requests/{request_id}/messages", status_code=201)
    def post_request_message(request_id: int, body: MessageBody, x_user_id: str = Header(...)):
        return _dump(bank.post_message(request_id, x_user_id, body.text))

    @app.get("/requests/{request_id}/messages")
    def list_request_messages(request_id: int, x_user_id: str = Header(...)):
        return _dump_all(bank.messages(request_id, acting_user_id=x_user_id))

    @app.get("/requests")
    def family_requests(status: Optional[str] = None, x_user_id: str = Header(...)):
        return _dump_all(bank.requests_for_family(x_user_id, status=status))

    @app.get("/requests/{user_id}")
    def child_requests(user_id: str, status: Optional[str] = None, x_user_id: str = Header(...)):
        return _dump_all(bank.requests_for_child(user_id, acting_user_id=x_user_id, status=status))

    @app.get("/notifications")
    def list_notifications(unread_only: bool = False, x_user_id: str = Header(...)):
        return _dump_all(bank.notifications(x_user_id, unread_only=unread_only))

    @app.patch("/notifications/{notification_id}")
    def read_notification(notification_id: int, x_user_id: str = Header(...)):
        return _dump(bank.mark_notification_read(notification_id, acting_user_id=x_user_id))

    return app


__all__ = ["create_app"]
