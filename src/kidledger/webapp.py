"""FastAPI surface exposing the allowance ledger to the app.

Serve with ``uvicorn kidledger.webapp:app``. Handlers are ``async`` so every
ledger mutation runs on the event loop thread, alongside the maturity
scheduler, and never on a worker thread.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Dict, Optional

from fastapi import FastAPI, Form, Query, Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.sessions import SessionMiddleware

from .api import ApiExporter
from .config import PARENT_SESSION_KEY, SESSION_SECRET
from .exceptions import KidLedgerError, NotFoundError, ValidationError
from .money import format_currency
from .rates import default_profile, term_label
from .service import KidLedger

exporter = ApiExporter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def get_ledger(request: Request) -> KidLedger:
    ledger: Optional[KidLedger] = request.app.state.ledger
    if ledger is None:
        ledger = KidLedger.from_config()
        request.app.state.ledger = ledger
    return ledger


def parent_authed(request: Request) -> bool:
    return bool(request.session.get(PARENT_SESSION_KEY))


def error_response(request: Request, code: str, status_code: int) -> JSONResponse:
    ledger = get_ledger(request)
    message = ledger.translator.error(code, locale=ledger.language)
    return JSONResponse({"error": code, "message": message}, status_code=status_code)


def require_parent(request: Request) -> Optional[JSONResponse]:
    if not parent_authed(request):
        return error_response(request, "parent_required", 401)
    return None


def notice(
    request: Request, key: str, params: Optional[Dict[str, object]] = None, **payload: object
) -> Dict[str, object]:
    ledger = get_ledger(request)
    body: Dict[str, object] = {"message": ledger.translator.translate(key, locale=ledger.language, **(params or {}))}
    body.update(payload)
    body.update(exporter.balance_snapshot(ledger))
    return body


async def _handle_validation_error(request: Request, exc: Exception) -> JSONResponse:
    code = exc.code if isinstance(exc, KidLedgerError) else "invalid_amount"
    return error_response(request, code, 400)


async def _handle_not_found(request: Request, exc: Exception) -> JSONResponse:
    code = exc.code if isinstance(exc, KidLedgerError) else "not_found"
    return error_response(request, code, 404)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(ledger: Optional[KidLedger] = None, *, run_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.ledger is None:
            app.state.ledger = KidLedger.from_config()
        service: KidLedger = app.state.ledger
        if run_scheduler:
            service.start()
        try:
            yield
        finally:
            await service.close()

    app = FastAPI(title="Kid Ledger", lifespan=lifespan)
    app.state.ledger = ledger
    app.add_middleware(
        SessionMiddleware,
        secret_key=SESSION_SECRET,
        same_site="lax",
        max_age=None,
    )
    app.add_exception_handler(ValidationError, _handle_validation_error)
    app.add_exception_handler(NotFoundError, _handle_not_found)

    # -- read-only views -------------------------------------------------
    @app.get("/health")
    async def health(request: Request):
        return get_ledger(request).health()

    @app.get("/api/balance")
    async def balance(request: Request):
        return exporter.balance_snapshot(get_ledger(request))

    @app.get("/api/transactions")
    async def transactions(request: Request, limit: int = Query(50, ge=0, le=1000)):
        items = get_ledger(request).transactions[:limit]
        return {"transactions": [exporter.transaction(tx) for tx in items]}

    @app.get("/api/transactions.csv")
    async def transactions_csv(request: Request):
        return Response(
            get_ledger(request).export_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=transactions.csv"},
        )

    @app.get("/api/deposits")
    async def deposits(request: Request):
        return {"deposits": [exporter.deposit(deposit) for deposit in get_ledger(request).deposits]}

    @app.get("/api/rates")
    async def rates(request: Request):
        return {"rates": [exporter.rate_option(option) for option in get_ledger(request).interest_rates()]}

    @app.get("/api/summary")
    async def summary(request: Request):
        return exporter.summary(get_ledger(request).summary())

    @app.get("/api/profile")
    async def profile(request: Request):
        service = get_ledger(request)
        return {
            "first_launch": service.is_first_launch,
            "parent": parent_authed(request),
            "profile": exporter.profile(service.profile),
        }

    # -- child actions ---------------------------------------------------
    @app.post("/api/spend")
    async def spend(
        request: Request,
        amount: str = Form(...),
        category: str = Form(...),
        title: str = Form(""),
    ):
        transaction = get_ledger(request).spend(amount, category, title)
        return {"transaction": exporter.transaction(transaction), **exporter.balance_snapshot(get_ledger(request))}

    @app.post("/api/deposits")
    async def create_deposit(
        request: Request,
        amount: str = Form(...),
        term_months: str = Form(...),
    ):
        deposit = get_ledger(request).create_deposit(amount, term_months)
        return notice(
            request,
            "notice.deposit_created",
            {"amount": format_currency(deposit.amount), "term": term_label(deposit.term_months)},
            deposit=exporter.deposit(deposit),
        )

    @app.post("/api/deposits/check")
    async def check_deposits(request: Request):
        credited = get_ledger(request).check_and_credit_matured_deposits(source="manual")
        return {"credited": credited, **exporter.balance_snapshot(get_ledger(request))}

    # -- parent gate -----------------------------------------------------
    @app.post("/api/parent/login")
    async def parent_login(request: Request, password: str = Form(...)):
        if not get_ledger(request).verify_parental_password(password):
            return error_response(request, "incorrect_password", 401)
        request.session[PARENT_SESSION_KEY] = True
        return {"parent": True}

    @app.post("/api/parent/logout")
    async def parent_logout(request: Request):
        request.session.clear()
        return {"parent": False}

    @app.post("/api/income")
    async def add_income(request: Request, amount: str = Form(...), title: str = Form("")):
        if (denied := require_parent(request)) is not None:
            return denied
        transaction = get_ledger(request).add_income(amount, title)
        return notice(
            request,
            "notice.allowance_added",
            {"amount": format_currency(transaction.amount)},
            transaction=exporter.transaction(transaction),
        )

    @app.post("/api/deposits/{deposit_id}/withdraw")
    async def withdraw_deposit(request: Request, deposit_id: str):
        if (denied := require_parent(request)) is not None:
            return denied
        service = get_ledger(request)
        service.withdraw_deposit(deposit_id)
        return notice(request, "notice.deposit_withdrawn", deposit=exporter.deposit(service.get_deposit(deposit_id)))

    @app.post("/api/rates")
    async def update_rates(request: Request):
        if (denied := require_parent(request)) is not None:
            return denied
        form = await request.form()
        service = get_ledger(request)
        term_rates = {
            key[len("rate_"):]: str(value) for key, value in form.items() if key.startswith("rate_")
        }
        default_rate = form.get("default_rate")
        service.update_rate_settings(
            interest_rate=str(default_rate) if default_rate is not None else None,
            term_rates=term_rates,
        )
        return notice(
            request,
            "notice.rates_updated",
            rates=[exporter.rate_option(option) for option in service.interest_rates()],
        )

    @app.post("/api/profile")
    async def update_profile(
        request: Request,
        parent_name: Optional[str] = Form(None),
        child_name: Optional[str] = Form(None),
        parental_password: Optional[str] = Form(None),
        app_style: Optional[str] = Form(None),
        language: Optional[str] = Form(None),
        interest_rate: Optional[str] = Form(None),
        notifications_enabled: Optional[bool] = Form(None),
    ):
        service = get_ledger(request)
        if not service.is_first_launch and (denied := require_parent(request)) is not None:
            return denied
        current = service.profile or default_profile()
        changes: Dict[str, object] = {}
        if parent_name is not None:
            changes["parent_name"] = parent_name.strip()
        if child_name is not None:
            changes["child_name"] = child_name.strip()
        if parental_password:
            changes["parental_password"] = parental_password
        if notifications_enabled is not None:
            changes["notifications_enabled"] = notifications_enabled
        if app_style is not None:
            changes["app_style"] = app_style
        if language is not None:
            changes["language"] = language
        if interest_rate is not None:
            changes["interest_rate"] = interest_rate
        try:
            updated = replace(current, **changes)
        except (ValueError, ArithmeticError) as exc:
            raise ValidationError(f"Invalid profile field: {exc}", code="invalid_profile") from exc
        service.update_user_profile(updated)
        request.session[PARENT_SESSION_KEY] = True
        return {"first_launch": service.is_first_launch, "profile": exporter.profile(service.profile)}

    @app.get("/api/audit")
    async def audit(request: Request, limit: int = Query(50, ge=1, le=200)):
        if (denied := require_parent(request)) is not None:
            return denied
        return {"events": get_ledger(request).audit_log.export(limit)}

    @app.post("/api/reset")
    async def reset(request: Request):
        if (denied := require_parent(request)) is not None:
            return denied
        get_ledger(request).clear_transactions()
        request.session.clear()
        return {"first_launch": True, **exporter.balance_snapshot(get_ledger(request))}

    return app


app = create_app()

__all__ = ["app", "create_app", "get_ledger", "parent_authed", "require_parent"]
