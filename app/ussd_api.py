from __future__ import annotations

import hmac
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.config import load_config
from records.admin_service import AdminService
from records.errors import InvalidTransitionError, RecordNotFoundError, RepositoryError
from sessions.store import SessionReaper
from ussd.handler import UssdRequestHandler

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def create_app(
    config: dict[str, Any] | None = None,
    handler: UssdRequestHandler | None = None,
    admin_service: AdminService | None = None,
) -> FastAPI:
    if config is None:
        config = load_config(os.getenv("USSD_CONFIG_PATH", DEFAULT_CONFIG_PATH))
    ussd_handler = handler or UssdRequestHandler(config)
    admin = admin_service or AdminService(
        ussd_handler.repository,
        country_code=str(config.get("phone", {}).get("country_code", "233")),
    )
    admin_token = str(config.get("admin", {}).get("token") or os.getenv("ADMIN_TOKEN", "")).strip()
    reaper = SessionReaper(
        ussd_handler.session_store,
        interval_sec=float(config.get("sessions", {}).get("purge_interval_sec", 60)),
    )
    ussd_path = str(config.get("ussd", {}).get("path", "/ussd") or "/ussd")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        reaper.start()
        try:
            yield
        finally:
            reaper.stop()
            ussd_handler.close()

    app = FastAPI(title="PCRS USSD Gateway", version="0.1.0", lifespan=lifespan)

    def _admin_denied(token: str | None) -> JSONResponse | None:
        if not admin_token:
            return JSONResponse(status_code=503, content={"ok": False, "error": "admin token is not configured"})
        if not token or not hmac.compare_digest(token.encode("utf-8"), admin_token.encode("utf-8")):
            return JSONResponse(status_code=401, content={"ok": False, "error": "invalid admin token"})
        return None

    def _admin_call(token: str | None, action: Any, *args: Any) -> JSONResponse:
        denied = _admin_denied(token)
        if denied is not None:
            return denied
        try:
            result = action(*args)
        except RecordNotFoundError as exc:
            return JSONResponse(status_code=404, content={"ok": False, "error": str(exc)})
        except InvalidTransitionError as exc:
            return JSONResponse(status_code=409, content={"ok": False, "error": str(exc)})
        except RepositoryError as exc:
            logger.error("admin-action-failed action=%s error=%s", getattr(action, "__name__", action), exc)
            return JSONResponse(status_code=500, content={"ok": False, "error": "repository failure"})
        content = result if isinstance(result, dict) else result.to_dict()
        return JSONResponse(status_code=200, content={"ok": True, "item": content})

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {"ok": True}

    @app.post(ussd_path)
    async def ussd(request: Request) -> JSONResponse:
        body = await request.body()
        status_code, payload = await run_in_threadpool(ussd_handler.handle, body)
        return JSONResponse(status_code=status_code, content=payload)

    @app.get("/courier/lookup")
    def courier_lookup(id: str | None = None) -> JSONResponse:
        query = (id or "").strip()
        if not query:
            return JSONResponse(status_code=400, content={"ok": False, "error": "id query parameter is required"})
        try:
            record = admin.lookup_courier(query)
        except RepositoryError as exc:
            logger.error("courier-lookup-failed error=%s", exc)
            return JSONResponse(status_code=500, content={"ok": False, "error": "repository failure"})
        if record is None:
            return JSONResponse(status_code=404, content={"ok": False, "error": "courier not found"})
        return JSONResponse(status_code=200, content={"ok": True, "item": record.to_dict()})

    @app.post("/admin/identities/{identity_id}/approve")
    def approve_identity(identity_id: str, x_admin_token: str | None = Header(default=None)) -> JSONResponse:
        return _admin_call(x_admin_token, admin.approve_identity, identity_id)

    @app.post("/admin/identities/{identity_id}/suspend")
    def suspend_identity(identity_id: str, x_admin_token: str | None = Header(default=None)) -> JSONResponse:
        return _admin_call(x_admin_token, admin.suspend_identity, identity_id)

    @app.get("/admin/identities/{identity_id}")
    def read_profile(identity_id: str, x_admin_token: str | None = Header(default=None)) -> JSONResponse:
        return _admin_call(x_admin_token, admin.read_profile, identity_id)

    @app.post("/admin/loans/{loan_id}/settle")
    def settle_loan(loan_id: str, x_admin_token: str | None = Header(default=None)) -> JSONResponse:
        return _admin_call(x_admin_token, admin.settle_loan, loan_id)

    @app.post("/admin/loans/{loan_id}/reject")
    def reject_loan(loan_id: str, x_admin_token: str | None = Header(default=None)) -> JSONResponse:
        return _admin_call(x_admin_token, admin.reject_loan, loan_id)

    return app
