from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import replace
from typing import Any, Callable, TypeVar

from core.enums import ActivityAction, FieldName, IdentityStatus
from core.models import (
    DialogResult,
    DialogState,
    EntryState,
    IdentityRecord,
    LoanFields,
    LoanState,
    LookupState,
    MenuState,
    RegistrationFields,
    RegistrationState,
)
from core.validators import (
    DEFAULT_COUNTRY_CODE,
    is_amount_in_range,
    lookup_key_for,
    normalize_phone,
    parse_amount,
)
from dialog import messages
from dialog.levels import (
    ENTRY_CANCEL,
    ENTRY_LOOKUP,
    ENTRY_SIGN_UP,
    LEVEL_ENTRY,
    LEVEL_LOAN_AMOUNT,
    LEVEL_LOAN_CONFIRM,
    LEVEL_LOOKUP,
    LEVEL_MENU,
    LOAN_CANCEL,
    LOAN_CONFIRM,
    MENU_LOAN,
    MENU_LOOKUP,
    MENU_STATUS,
    MENU_SUPPORT,
    NAV_BACK,
    NAV_HOME,
    can_transition,
    is_authenticated_stack,
)
from dialog.schema import FieldSpec, RegistrationSchema, registration_schema_from_config
from notifications.service import NotificationService
from records.errors import RecordNotFoundError, RepositoryError, RepositoryTimeoutError
from records.repository_interface import RecordRepositoryProtocol
from sessions.locks import SessionBusyError, SessionLockRegistry
from sessions.store import SessionStoreProtocol

logger = logging.getLogger(__name__)

T = TypeVar("T")
Stack = list[DialogState]


class DialogEngine:
    """USSD session state machine.

    Each call applies exactly one transition to the session stack of `token`
    while holding that token's lock. Repository calls are bounded by
    `repository_timeout_sec`; any repository fault ends the session with the
    generic unavailable message.
    """

    def __init__(
        self,
        repository: RecordRepositoryProtocol,
        session_store: SessionStoreProtocol,
        schema: RegistrationSchema,
        notifier: NotificationService | None = None,
        lock_registry: SessionLockRegistry | None = None,
        service_name: str = "PCRS",
        support_text: str = "",
        country_code: str = DEFAULT_COUNTRY_CODE,
        loan_min_amount: int = 10,
        loan_max_amount: int = 1000,
        currency: str = "GHS",
        repository_timeout_sec: float = 5.0,
        repository_executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.repository = repository
        self.store = session_store
        self.schema = schema
        self.notifier = notifier
        self.locks = lock_registry or SessionLockRegistry()
        self.service_name = service_name
        self.support_text = support_text
        self.country_code = country_code
        self.loan_min_amount = int(loan_min_amount)
        self.loan_max_amount = int(loan_max_amount)
        self.currency = currency
        self.repository_timeout_sec = max(0.1, float(repository_timeout_sec))
        self._executor = repository_executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix="records")

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        repository: RecordRepositoryProtocol,
        session_store: SessionStoreProtocol,
        notifier: NotificationService | None = None,
    ) -> DialogEngine:
        service_conf = config.get("service", {})
        sessions_conf = config.get("sessions", {})
        loan_conf = config.get("loan", {})
        return cls(
            repository=repository,
            session_store=session_store,
            schema=registration_schema_from_config(config),
            notifier=notifier,
            lock_registry=SessionLockRegistry(float(sessions_conf.get("lock_timeout_sec", 10))),
            service_name=str(service_conf.get("name", "PCRS") or "PCRS"),
            support_text=str(service_conf.get("support_text", "") or ""),
            country_code=str(config.get("phone", {}).get("country_code", DEFAULT_COUNTRY_CODE)),
            loan_min_amount=int(loan_conf.get("min_amount", 10)),
            loan_max_amount=int(loan_conf.get("max_amount", 1000)),
            currency=str(loan_conf.get("currency", "GHS") or "GHS"),
            repository_timeout_sec=float(config.get("records", {}).get("timeout_sec", 5)),
        )

    def handle(self, token: str, is_new_session: bool, subscriber_id: str, raw_input: str) -> DialogResult:
        try:
            with self.locks.hold(token):
                return self._transition(token, is_new_session, subscriber_id, raw_input)
        except SessionBusyError as exc:
            logger.warning("ussd-session-busy token=%s waited=%s", token, exc.timeout_sec)
            return DialogResult(messages.SERVICE_UNAVAILABLE, False)

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)

    def _transition(self, token: str, is_new_session: bool, subscriber_id: str, raw_input: str) -> DialogResult:
        subscriber = normalize_phone(subscriber_id, self.country_code)
        try:
            if is_new_session:
                return self._start(token, subscriber)

            stack = self.store.get(token)
            if stack is None:
                return DialogResult(messages.SESSION_EXPIRED, False)

            text = (raw_input or "").strip()
            if text == NAV_HOME:
                return self._go_home(token, stack, subscriber)
            if text == NAV_BACK:
                return self._go_back(token, stack)
            return self._step(token, stack, subscriber, text)
        except RecordNotFoundError as exc:
            logger.warning("ussd-record-missing token=%s error=%s", token, exc)
            return self._finish(token, messages.RECORD_NOT_FOUND)
        except RepositoryError as exc:
            logger.error("ussd-transition-failed token=%s error=%s", token, exc)
            return self._finish(token, messages.SERVICE_UNAVAILABLE)
        except Exception:
            logger.exception("ussd-transition-crashed token=%s", token)
            return self._finish(token, messages.SERVICE_UNAVAILABLE)

    # Navigation

    def _start(self, token: str, subscriber: str) -> DialogResult:
        state = self._home_state(subscriber)
        logger.info("ussd-session-started token=%s flow=%s", token, state.flow.value)
        return self._reply(token, [state], state.message)

    def _go_home(self, token: str, stack: Stack, subscriber: str) -> DialogResult:
        if is_authenticated_stack(stack):
            state = self._home_state(subscriber)
        else:
            state = self._entry_state()
        return self._reply(token, [state], state.message)

    def _go_back(self, token: str, stack: Stack) -> DialogResult:
        if len(stack) > 1:
            stack.pop()
        return self._reply(token, stack, stack[-1].message)

    def _home_state(self, subscriber: str) -> DialogState:
        record = self._call(self.repository.find_identity, FieldName.PHONE, subscriber)
        if record is None:
            return self._entry_state()
        return self._menu_state(record)

    def _entry_state(self) -> EntryState:
        return EntryState(
            level=LEVEL_ENTRY,
            message=messages.build_entry_menu(self.service_name, self.schema.first.prompt),
        )

    def _registration_start(self) -> RegistrationState:
        first = self.schema.first
        return RegistrationState(level=first.name, message=first.prompt)

    def _menu_state(self, record: IdentityRecord) -> MenuState:
        display_name = record.display_name()
        return MenuState(
            level=LEVEL_MENU,
            message=messages.build_menu(self.service_name, display_name),
            identity_id=record.identity_id,
            display_name=display_name,
        )

    # Level dispatch

    def _step(self, token: str, stack: Stack, subscriber: str, text: str) -> DialogResult:
        state = stack[-1]
        result: DialogResult | None = None
        if isinstance(state, EntryState):
            result = self._entry_step(token, stack, state, subscriber, text)
        elif isinstance(state, RegistrationState):
            result = self._registration_step(token, stack, state, subscriber, text)
        elif isinstance(state, MenuState):
            result = self._menu_step(token, stack, state, text)
        elif isinstance(state, LookupState):
            result = self._lookup_step(token, stack, state, subscriber, text)
        elif isinstance(state, LoanState):
            result = self._loan_step(token, stack, state, text)

        if result is not None:
            return result
        logger.warning("ussd-unknown-level token=%s level=%s", token, getattr(state, "level", None))
        return self._go_home(token, stack, subscriber)

    def _entry_step(
        self,
        token: str,
        stack: Stack,
        state: EntryState,
        subscriber: str,
        text: str,
    ) -> DialogResult | None:
        if state.level != LEVEL_ENTRY:
            return None

        if text == ENTRY_SIGN_UP:
            return self._advance(token, stack, self._registration_start())
        if text == ENTRY_LOOKUP:
            return self._advance(token, stack, LookupState(level=LEVEL_LOOKUP, message=messages.build_lookup_prompt()))
        if text == ENTRY_CANCEL:
            return self._finish(token, messages.SESSION_ENDED)

        # Anything else answers the first registration field directly.
        first = self._registration_start()
        stack.append(first)
        return self._registration_step(token, stack, first, subscriber, text)

    def _registration_step(
        self,
        token: str,
        stack: Stack,
        state: RegistrationState,
        subscriber: str,
        text: str,
    ) -> DialogResult | None:
        field_spec = self.schema.get(state.level)
        if field_spec is None:
            return None

        if field_spec.name == FieldName.CONFIRM_PASSWORD:
            if text != (state.fields.password or ""):
                if len(stack) > 1:
                    stack.pop()
                return self._retry(token, stack, field_spec.invalid_message)
            return self._advance_registration(token, stack, field_spec, state.fields, subscriber)

        value = field_spec.normalizer(text)
        if not field_spec.validator(value):
            return self._retry(token, stack, field_spec.invalid_message)
        if field_spec.unique and self._call(self.repository.find_identity, field_spec.name, value) is not None:
            return self._retry(token, stack, field_spec.taken_message)
        fields = state.fields.with_value(field_spec.name, value)
        return self._advance_registration(token, stack, field_spec, fields, subscriber)

    def _advance_registration(
        self,
        token: str,
        stack: Stack,
        field_spec: FieldSpec,
        fields: RegistrationFields,
        subscriber: str,
    ) -> DialogResult:
        next_spec = self.schema.next_after(field_spec.name)
        if next_spec is None:
            return self._complete_registration(token, stack, fields, subscriber)
        return self._advance(
            token,
            stack,
            RegistrationState(level=next_spec.name, message=next_spec.prompt, fields=fields),
        )

    def _complete_registration(
        self,
        token: str,
        stack: Stack,
        fields: RegistrationFields,
        subscriber: str,
    ) -> DialogResult:
        # Captured values may have been claimed by another session since capture.
        if self._call(self.repository.find_identity, FieldName.PHONE, subscriber) is not None:
            return self._finish(token, messages.PHONE_ALREADY_REGISTERED)
        for field_spec in self.schema.unique_fields():
            value = fields.value_of(field_spec.name)
            if value and self._call(self.repository.find_identity, field_spec.name, value) is not None:
                return self._rewind_to(token, stack, field_spec)

        record_fields: dict[str, Any] = dict(fields.to_record_fields())
        record_fields[FieldName.PHONE] = subscriber
        record = self._call(self.repository.create_identity, record_fields)
        logger.info("ussd-registration-completed token=%s identity_id=%s", token, record.identity_id)
        self._log_activity(record.identity_id, ActivityAction.REGISTERED, {"channel": "ussd", "session_id": token})
        self._notify(lambda notifier: notifier.notify_registration(record))
        return self._finish(token, messages.build_registration_success(self.service_name))

    def _rewind_to(self, token: str, stack: Stack, field_spec: FieldSpec) -> DialogResult:
        for index, entry in enumerate(stack):
            if isinstance(entry, RegistrationState) and entry.level == field_spec.name:
                del stack[index + 1 :]
                break
        return self._retry(token, stack, field_spec.taken_message)

    def _menu_step(
        self,
        token: str,
        stack: Stack,
        state: MenuState,
        text: str,
    ) -> DialogResult | None:
        if state.level != LEVEL_MENU:
            return None

        if text == MENU_STATUS:
            record = self._require_identity(state.identity_id)
            loans = self._call(self.repository.list_loans, record.identity_id, 1)
            latest = loans[0] if loans else None
            return self._finish(token, messages.build_status(record, latest, self.currency))

        if text == MENU_LOAN:
            record = self._require_identity(state.identity_id)
            if record.status != IdentityStatus.VERIFIED:
                return self._finish(token, messages.build_loan_not_allowed(record.status))
            return self._advance(
                token,
                stack,
                LoanState(
                    level=LEVEL_LOAN_AMOUNT,
                    message=messages.build_loan_amount_prompt(self.loan_min_amount, self.loan_max_amount, self.currency),
                    fields=LoanFields(identity_id=record.identity_id),
                ),
            )

        if text == MENU_LOOKUP:
            return self._advance(token, stack, LookupState(level=LEVEL_LOOKUP, message=messages.build_lookup_prompt()))

        if text == MENU_SUPPORT:
            return self._finish(token, messages.build_support(self.support_text))

        return self._finish(token, messages.SESSION_ENDED)

    def _lookup_step(
        self,
        token: str,
        stack: Stack,
        state: LookupState,
        subscriber: str,
        text: str,
    ) -> DialogResult | None:
        if state.level != LEVEL_LOOKUP:
            return None

        field_name, value = lookup_key_for(text, self.country_code)
        record = self._call(self.repository.find_identity, field_name, value)
        if record is None:
            return self._retry(token, stack, messages.build_lookup_not_found())

        requester = stack[0].identity_id if isinstance(stack[0], MenuState) else subscriber
        self._log_activity(requester, ActivityAction.LOOKUP, {"field": field_name, "identity_id": record.identity_id})
        self._notify(lambda notifier: notifier.notify_lookup_details(record, subscriber))
        return self._finish(token, messages.build_lookup_summary(record))

    def _loan_step(self, token: str, stack: Stack, state: LoanState, text: str) -> DialogResult | None:
        if state.level == LEVEL_LOAN_AMOUNT:
            amount = parse_amount(text)
            if not is_amount_in_range(amount, self.loan_min_amount, self.loan_max_amount):
                return self._retry(
                    token,
                    stack,
                    messages.build_loan_amount_invalid(self.loan_min_amount, self.loan_max_amount),
                )
            return self._advance(
                token,
                stack,
                LoanState(
                    level=LEVEL_LOAN_CONFIRM,
                    message=messages.build_loan_confirm(amount, self.currency),
                    fields=replace(state.fields, amount=amount),
                ),
            )

        if state.level == LEVEL_LOAN_CONFIRM and state.fields.amount is not None:
            amount = state.fields.amount
            if text == LOAN_CANCEL:
                return self._finish(token, messages.build_loan_cancelled())
            if text != LOAN_CONFIRM:
                return self._retry(token, stack, messages.build_loan_confirm_invalid(amount, self.currency))

            record = self._require_identity(state.fields.identity_id)
            if record.status != IdentityStatus.VERIFIED:
                return self._finish(token, messages.build_loan_not_allowed(record.status))
            loan = self._call(self.repository.create_loan, record.identity_id, amount)
            logger.info("ussd-loan-requested token=%s loan_id=%s", token, loan.loan_id)
            self._log_activity(
                record.identity_id,
                ActivityAction.LOAN_REQUESTED,
                {"loan_id": loan.loan_id, "amount": amount},
            )
            self._notify(lambda notifier: notifier.notify_loan_requested(record, loan))
            return self._finish(token, messages.build_loan_submitted(amount, self.currency))

        return None

    # Stack mutations

    def _reply(self, token: str, stack: Stack, message: str) -> DialogResult:
        self.store.put(token, stack)
        return DialogResult(message, True)

    def _retry(self, token: str, stack: Stack, message: str) -> DialogResult:
        stack[-1] = replace(stack[-1], message=message)
        return self._reply(token, stack, message)

    def _advance(self, token: str, stack: Stack, state: DialogState) -> DialogResult:
        if not can_transition(stack[-1].flow, state.flow):
            raise RuntimeError(f"illegal push: {stack[-1].flow.value} -> {state.flow.value}")
        stack.append(state)
        return self._reply(token, stack, state.message)

    def _finish(self, token: str, message: str) -> DialogResult:
        self.store.delete(token)
        return DialogResult(message, False)

    # Collaborators

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.repository_timeout_sec)
        except FutureTimeoutError as exc:
            future.cancel()
            name = getattr(fn, "__name__", repr(fn))
            raise RepositoryTimeoutError(f"{name} exceeded {self.repository_timeout_sec}s") from exc

    def _require_identity(self, identity_id: str) -> IdentityRecord:
        record = self._call(self.repository.get_identity, identity_id)
        if record is None:
            raise RecordNotFoundError("identity", identity_id)
        return record

    def _log_activity(self, subject_id: str, action: str, details: dict[str, Any]) -> None:
        try:
            self._call(self.repository.append_activity, subject_id, action, details)
        except Exception as exc:  # noqa: BLE001
            logger.warning("activity-append-failed subject_id=%s action=%s error=%s", subject_id, action, exc)

    def _notify(self, send: Callable[[NotificationService], Any]) -> None:
        if self.notifier is None:
            return
        try:
            send(self.notifier)
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification-dispatch-failed error=%s", exc)
