"""pyimmut - In-process immutable-snapshot state store."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyimmut")
except PackageNotFoundError:
    __version__ = "0+local"
from pyimmut._draft import DraftDict, DraftList
from pyimmut.config import StoreConfig
from pyimmut.exceptions import (
    DraftRevokedError,
    DuplicateNamespaceError,
    ImmutConfigError,
    ImmutError,
    InvalidRootStateError,
    KeyPathError,
    NamespaceDefinitionError,
    NamespaceError,
    TransitionLoopError,
    UnknownNamespaceError,
)
from pyimmut.keypath import Token, assign, format_chain, parse, remove, resolve
from pyimmut.producer import MUTATED_IN_PLACE, Production, Replace, produce
from pyimmut.state.events import Diagnostic, DiagnosticCode, StoreMode
from pyimmut.state.namespaces import BoundActions, Namespace
from pyimmut.state.store import Store, create_store, default_store, reset_default_store

__all__ = [
    "__version__",
    "MUTATED_IN_PLACE",
    "BoundActions",
    "Diagnostic",
    "DiagnosticCode",
    "DraftDict",
    "DraftList",
    "DraftRevokedError",
    "DuplicateNamespaceError",
    "ImmutConfigError",
    "ImmutError",
    "InvalidRootStateError",
    "KeyPathError",
    "Namespace",
    "NamespaceDefinitionError",
    "NamespaceError",
    "Production",
    "Replace",
    "Store",
    "StoreConfig",
    "StoreMode",
    "Token",
    "TransitionLoopError",
    "UnknownNamespaceError",
    "assign",
    "create_store",
    "default_store",
    "format_chain",
    "parse",
    "produce",
    "remove",
    "resolve",
    "reset_default_store",
]
