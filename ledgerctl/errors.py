"""Error taxonomy for the reconciliation core.

Error codes are stable and surface on the resource status as ``errorCode``.
Codes in :data:`BREAKING_CODES` mark failures that retrying cannot fix: the
dispatcher records them on the status and stops requeueing.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    UNKNOWN = 0
    INVALID_DEPLOYMENT_CREATE_REQUEST = 1
    INVALID_DEPLOYMENT_UPDATE_REQUEST = 2
    INVALID_SERVICE_CREATE_REQUEST = 3
    INVALID_SERVICE_UPDATE_REQUEST = 4
    INVALID_PVC_CREATE_REQUEST = 5
    INVALID_PVC_UPDATE_REQUEST = 6
    INVALID_CONFIGMAP_CREATE_REQUEST = 7
    INVALID_CONFIGMAP_UPDATE_REQUEST = 8
    INVALID_SERVICE_ACCOUNT_CREATE_REQUEST = 9
    INVALID_SERVICE_ACCOUNT_UPDATE_REQUEST = 10
    INVALID_ROLE_CREATE_REQUEST = 11
    INVALID_ROLE_UPDATE_REQUEST = 12
    INVALID_ROLE_BINDING_CREATE_REQUEST = 13
    INVALID_ROLE_BINDING_UPDATE_REQUEST = 14
    INVALID_PEER_INIT_SPEC = 15
    INVALID_ORDERER_TYPE = 16
    INVALID_ORDERER_NODE_CREATE_REQUEST = 17
    INVALID_ORDERER_NODE_UPDATE_REQUEST = 18
    INVALID_ORDERER_INIT_SPEC = 19
    CA_INITIALIZATION_FAILED = 20
    ORDERER_INITIALIZATION_FAILED = 21
    PEER_INITIALIZATION_FAILED = 22
    MIGRATION_FAILED = 23
    FABRIC_PEER_MIGRATION_FAILED = 24
    FABRIC_ORDERER_MIGRATION_FAILED = 25
    INVALID_CUSTOM_RESOURCE_CREATE_REQUEST = 26
    FABRIC_CA_MIGRATION_FAILED = 27
    VALIDATION_FAILED = 28


BREAKING_CODES = frozenset(
    {
        ErrorCode.INVALID_DEPLOYMENT_CREATE_REQUEST,
        ErrorCode.INVALID_DEPLOYMENT_UPDATE_REQUEST,
        ErrorCode.INVALID_SERVICE_CREATE_REQUEST,
        ErrorCode.INVALID_SERVICE_UPDATE_REQUEST,
        ErrorCode.INVALID_PVC_CREATE_REQUEST,
        ErrorCode.INVALID_PVC_UPDATE_REQUEST,
        ErrorCode.INVALID_CONFIGMAP_CREATE_REQUEST,
        ErrorCode.INVALID_CONFIGMAP_UPDATE_REQUEST,
        ErrorCode.INVALID_SERVICE_ACCOUNT_CREATE_REQUEST,
        ErrorCode.INVALID_SERVICE_ACCOUNT_UPDATE_REQUEST,
        ErrorCode.INVALID_ROLE_CREATE_REQUEST,
        ErrorCode.INVALID_ROLE_UPDATE_REQUEST,
        ErrorCode.INVALID_ROLE_BINDING_CREATE_REQUEST,
        ErrorCode.INVALID_ROLE_BINDING_UPDATE_REQUEST,
        ErrorCode.INVALID_PEER_INIT_SPEC,
        ErrorCode.INVALID_ORDERER_TYPE,
        ErrorCode.INVALID_ORDERER_INIT_SPEC,
        ErrorCode.CA_INITIALIZATION_FAILED,
        ErrorCode.ORDERER_INITIALIZATION_FAILED,
        ErrorCode.PEER_INITIALIZATION_FAILED,
        ErrorCode.FABRIC_PEER_MIGRATION_FAILED,
        ErrorCode.FABRIC_ORDERER_MIGRATION_FAILED,
        ErrorCode.INVALID_CUSTOM_RESOURCE_CREATE_REQUEST,
        ErrorCode.VALIDATION_FAILED,
    }
)


class LedgerctlError(Exception):
    """Base class for every error raised by ledgerctl."""


class NotFoundError(LedgerctlError):
    """The requested object does not exist in the store."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f"{kind} '{namespace}/{name}' not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class ConflictError(LedgerctlError):
    """An optimistic-concurrency write lost against a concurrent writer."""


class OperatorError(LedgerctlError):
    """An error carrying a stable code that is surfaced on the resource status."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(f"Code: {int(code)} - {message}")
        self.code = code
        self.message = message

    @classmethod
    def wrap(cls, err: BaseException, code: ErrorCode, message: str) -> OperatorError:
        wrapped = cls(code, f"{message}: {err}")
        wrapped.__cause__ = err
        return wrapped


class ValidationError(OperatorError):
    """The resource itself is invalid (bad name, malformed overrides)."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.VALIDATION_FAILED) -> None:
        super().__init__(code, message)


class BreakingBusinessError(OperatorError):
    """Raised by a business reconciler for failures that retrying cannot fix."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        if code not in BREAKING_CODES:
            raise ValueError(f"error code {int(code)} is not a breaking code")
        super().__init__(code, message)


def find_operator_error(err: BaseException | None) -> OperatorError | None:
    """Walk the ``__cause__`` chain and return the first OperatorError."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, OperatorError):
            return err
        seen.add(id(err))
        err = err.__cause__
    return None


def error_code(err: BaseException | None) -> int:
    oerr = find_operator_error(err)
    return int(oerr.code) if oerr is not None else 0


def is_breaking(err: BaseException | None) -> bool:
    oerr = find_operator_error(err)
    return oerr is not None and oerr.code in BREAKING_CODES
