"""
Error taxonomy for the case engine.

ValidationError, NotFound, ConflictError and PersistenceError abort the
primary mutation and reach the caller. SideEffectError is only ever created
by the side-effect supervisor: it is logged and kept for inspection, never
raised to whoever triggered the mutation.
"""


class CaseEngineError(Exception):
    """Base class for every error raised by the case engine."""


class ValidationError(CaseEngineError):
    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class MissingRequiredFields(ValidationError):
    def __init__(self, fields: list[str]) -> None:
        super().__init__(
            f"Missing required fields: {', '.join(fields)}",
            field=fields[0] if fields else None,
        )
        self.fields = list(fields)


class NotFound(CaseEngineError):
    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} {key} not found")
        self.entity = entity
        self.key = key


class ConflictError(CaseEngineError):
    pass


class PersistenceError(CaseEngineError):
    pass


class SideEffectError(CaseEngineError):
    def __init__(self, task_name: str, message: str) -> None:
        super().__init__(f"{task_name}: {message}")
        self.task_name = task_name
