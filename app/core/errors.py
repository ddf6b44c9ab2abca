from __future__ import annotations


class DomainError(Exception):
    """Base for every error kind the query engine lets out.

    Storage-engine exceptions never cross the engine boundary; they are turned
    into one of the subclasses below by the failure classifier.
    """

    kind = "DomainError"

    def __init__(self, detail: str, *, entity_name: str | None = None):
        self.detail = detail
        self.entity_name = entity_name
        super().__init__(detail)


class NotFound(DomainError):
    kind = "NotFound"


class AlreadyExists(DomainError):
    kind = "AlreadyExists"


class InvalidReference(DomainError):
    kind = "InvalidReference"


class InvalidIdentifier(DomainError):
    kind = "InvalidIdentifier"

    def __init__(self, literal: str | None, *, entity_name: str | None = None):
        self.literal = literal
        shown = literal if literal is not None else "provided value"
        super().__init__(
            f'Invalid UUID format: "{shown}". Please provide a valid UUID.',
            entity_name=entity_name,
        )


class InvalidQuery(DomainError):
    """Caller-supplied query description is structurally invalid."""

    kind = "InvalidQuery"


class OperationFailed(DomainError):
    kind = "OperationFailed"

    def __init__(self, operation: str, *, entity_name: str | None = None):
        self.operation = operation
        target = entity_name or "entity"
        super().__init__(f"Failed to {operation} {target}", entity_name=entity_name)
