"""Store lifecycle and diagnostic records."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pyimmut.exceptions import (
    DuplicateNamespaceError,
    InvalidRootStateError,
    NamespaceError,
    UnknownNamespaceError,
)
from pyimmut.keypath import Token


class StoreMode(StrEnum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"


class DiagnosticCode(StrEnum):
    INVALID_ROOT_STATE = "invalid_root_state"
    DUPLICATE_NAMESPACE = "duplicate_namespace"
    UNKNOWN_NAMESPACE = "unknown_namespace"


_ERROR_TYPES: dict[DiagnosticCode, type[NamespaceError]] = {
    DiagnosticCode.INVALID_ROOT_STATE: InvalidRootStateError,
    DiagnosticCode.DUPLICATE_NAMESPACE: DuplicateNamespaceError,
    DiagnosticCode.UNKNOWN_NAMESPACE: UnknownNamespaceError,
}


class Diagnostic(BaseModel):
    """A non-fatal problem reported by ``combine`` or ``seclude``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    code: DiagnosticCode
    namespace: str | Token | None = Field(default=None, description="Namespace the problem is about, if any")
    message: str

    def to_exception(self) -> NamespaceError:
        """Build the exception raised for this diagnostic in strict mode."""
        return _ERROR_TYPES[self.code](self.message, namespace=self.namespace)
