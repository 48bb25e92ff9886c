from __future__ import annotations

import json
import logging
from typing import Any

from core.models import UssdRequest, UssdResponse
from dialog.engine import DialogEngine
from notifications.service import NotificationService
from records.repository_factory import create_record_repository
from records.repository_interface import RecordRepositoryProtocol
from sessions.store import MemorySessionStore, SessionStoreProtocol

logger = logging.getLogger(__name__)


class UssdRequestHandler:
    def __init__(
        self,
        config: dict[str, Any],
        repository: RecordRepositoryProtocol | None = None,
        session_store: SessionStoreProtocol | None = None,
        notification_service: NotificationService | None = None,
        engine: DialogEngine | None = None,
    ) -> None:
        self.config = config
        sessions_conf = config.get("sessions", {})
        self.repository = repository or create_record_repository(config)
        self.session_store = session_store or MemorySessionStore(
            ttl_minutes=float(sessions_conf.get("ttl_minutes", 15)),
        )
        self.notification_service = notification_service or NotificationService(config)
        self.engine = engine or DialogEngine.from_config(
            config,
            repository=self.repository,
            session_store=self.session_store,
            notifier=self.notification_service,
        )

    def handle(self, body: bytes) -> tuple[int, dict[str, Any]]:
        try:
            payload = json.loads(body.decode("utf-8"))
        except Exception:
            return 400, {"ok": False, "error": "invalid json payload"}
        if not isinstance(payload, dict):
            return 400, {"ok": False, "error": "payload must be an object"}
        return self.handle_payload(payload)

    def handle_payload(self, payload: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        request = UssdRequest.from_payload(payload)
        if not request.session_id:
            return 400, {"ok": False, "error": "sessionID is required"}

        result = self.engine.handle(
            token=request.session_id,
            is_new_session=request.new_session,
            subscriber_id=request.msisdn,
            raw_input=request.user_data,
        )
        logger.debug(
            "ussd-request session_id=%s new=%s continue=%s",
            request.session_id,
            request.new_session,
            result.continue_session,
        )
        response = UssdResponse(
            session_id=request.session_id,
            user_id=request.user_id,
            message=result.message,
            continue_session=result.continue_session,
            msisdn=request.msisdn,
        )
        return 200, response.to_dict()

    def close(self) -> None:
        self.engine.shutdown(wait=False)
        self.notification_service.shutdown(wait=False)
