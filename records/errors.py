from __future__ import annotations


class RepositoryError(RuntimeError):
    pass


class DuplicateKeyError(RepositoryError):
    def __init__(self, field_name: str, value: str | None = None) -> None:
        super().__init__(f"duplicate key: field={field_name}")
        self.field_name = field_name
        self.value = value


class RecordNotFoundError(RepositoryError):
    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class RecordValidationError(RepositoryError):
    pass


class RepositoryTimeoutError(RepositoryError):
    pass


class InvalidTransitionError(RepositoryError):
    def __init__(self, kind: str, current: str, target: str) -> None:
        super().__init__(f"{kind} cannot move from {current} to {target}")
        self.kind = kind
        self.current = current
        self.target = target
