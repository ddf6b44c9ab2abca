"""Maps storage-layer exceptions onto the engine's error kinds.

Backends only describe constraint and literal failures in their messages, so
recognition works by matching message signatures. The signatures live in one
table; the first match wins and anything unmatched becomes ``OperationFailed``.
"""
from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from app.core.errors import (
    AlreadyExists,
    DomainError,
    InvalidIdentifier,
    InvalidReference,
    OperationFailed,
)

_LOG = logging.getLogger("app.query.errors")

_QUOTED_LITERAL = re.compile(r'"([^"]+)"')


def _backend_message(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc)


def _already_exists(message: str, entity_name: Optional[str]) -> DomainError:
    return AlreadyExists(f"{entity_name or 'Entity'} already exists", entity_name=entity_name)


def _invalid_reference(message: str, entity_name: Optional[str]) -> DomainError:
    return InvalidReference("Referenced entity does not exist", entity_name=entity_name)


def _invalid_identifier(message: str, entity_name: Optional[str]) -> DomainError:
    match = _QUOTED_LITERAL.search(message)
    return InvalidIdentifier(match.group(1) if match else None, entity_name=entity_name)


@dataclass(frozen=True)
class FailureSignature:
    name: str
    pattern: re.Pattern
    build: Callable[[str, Optional[str]], DomainError]

    def matches(self, message: str) -> bool:
        return self.pattern.search(message) is not None


FAILURE_SIGNATURES: tuple[FailureSignature, ...] = (
    FailureSignature(
        "unique_violation",
        re.compile(r"duplicate key|UNIQUE constraint failed|Duplicate entry", re.IGNORECASE),
        _already_exists,
    ),
    FailureSignature(
        "foreign_key_violation",
        re.compile(r"violates foreign key constraint|FOREIGN KEY constraint failed", re.IGNORECASE),
        _invalid_reference,
    ),
    FailureSignature(
        "invalid_uuid_literal",
        re.compile(r"invalid input syntax for type uuid", re.IGNORECASE),
        _invalid_identifier,
    ),
)


def classify_failure(exc: Exception, operation: str, entity_name: Optional[str] = None) -> DomainError:
    if isinstance(exc, DomainError):
        return exc
    message = _backend_message(exc)
    for signature in FAILURE_SIGNATURES:
        if signature.matches(message):
            _LOG.warning("%s %s rejected by storage (%s)", entity_name or "entity", operation, signature.name)
            return signature.build(message, entity_name)
    _LOG.error("Error in %s repository - %s", entity_name or "entity", operation, exc_info=exc)
    return OperationFailed(operation, entity_name=entity_name)


@contextmanager
def storage_failures(operation: str, entity_name: Optional[str] = None) -> Iterator[None]:
    """Re-raise anything escaping the block as a ``DomainError``.

    Only ``Exception`` is intercepted: cancellation and interpreter exits pass
    through untouched.
    """
    try:
        yield
    except DomainError:
        raise
    except Exception as exc:
        raise classify_failure(exc, operation, entity_name) from exc
