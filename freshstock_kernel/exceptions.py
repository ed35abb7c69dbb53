"""
Typed Exception Hierarchy for the freshstock kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements must fail precisely. Callers (web layer, scheduler) decide
what to show a store manager based on the exception TYPE and its structured
attributes, never on message text:

Example - WRONG way to handle errors:
    try:
        workflow.approve(transfer_id, approver)
    except Exception as e:
        if "insufficient" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way (what this module enables):
    try:
        workflow.approve(transfer_id, approver)
    except InsufficientStockError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FreshstockError (base)
    |
    +-- ValidationError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- BatchNotFoundError
    |   +-- BatchDisposedError
    |   +-- BatchNotExpiredError
    |   +-- BatchNotDisposedError
    |
    +-- CatalogError
    |   +-- ProductNotFoundError
    |   +-- BranchNotFoundError
    |
    +-- WorkflowError
    |   +-- TransferNotFoundError
    |   +-- InvalidTransitionError
    |   +-- ApprovalAuthorityError
    |
    +-- ThrottledError
    |
    +-- ConfigurationError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                   | When Raised
-----------|------------------------|------------------------------------------
Input      | VALIDATION_ERROR       | Bad input shape, rejected before mutation
-----------|------------------------|------------------------------------------
Stock      | INSUFFICIENT_STOCK     | Requested > available (never partial)
           | BATCH_NOT_FOUND        | Batch ID doesn't exist
           | BATCH_DISPOSED         | Mutation attempted on a frozen batch
           | BATCH_NOT_EXPIRED      | Disposal of a batch that is not expired
           | BATCH_NOT_DISPOSED     | Undo of a batch that is not disposed
-----------|------------------------|------------------------------------------
Catalog    | PRODUCT_NOT_FOUND      | Catalog has no such product
           | BRANCH_NOT_FOUND       | Catalog has no such branch
-----------|------------------------|------------------------------------------
Workflow   | TRANSFER_NOT_FOUND     | Transfer ID doesn't exist
           | INVALID_TRANSITION     | Action not legal from current status
           | APPROVAL_NOT_AUTHORIZED| Approver lacks role / branch scope
-----------|------------------------|------------------------------------------
Throttle   | THROTTLED              | Same analysis computed moments ago
-----------|------------------------|------------------------------------------
Config     | CONFIGURATION_ERROR    | Invalid configuration value
-----------|------------------------|------------------------------------------
Storage    | IMMUTABILITY_VIOLATION | Update/delete of a mutation or history row

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ThrottledError is a soft signal. Callers retry later or fall back to
   cached data; it is not an error page.

2. Domain exceptions inherit from Exception, not ValueError, so they can be
   caught as a group without catching programming errors.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID


class FreshstockError(Exception):
    """
    Base exception for all freshstock errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FRESHSTOCK_ERROR"


class ValidationError(FreshstockError):
    """Input rejected before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Stock-related exceptions


class StockError(FreshstockError):
    """Base exception for batch and stock errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    Requested quantity exceeds what is available.

    Raised by the ledger when a delta would drive a batch negative, by the
    allocator when a non-partial consumption has a shortage, and by the
    transfer workflow when unreserved stock does not cover a request.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        available: int,
        requested: int,
        product_id: UUID | None = None,
        branch_id: UUID | None = None,
        batch_id: UUID | None = None,
    ):
        self.available = available
        self.requested = requested
        self.product_id = product_id
        self.branch_id = branch_id
        self.batch_id = batch_id
        where = f"batch {batch_id}" if batch_id else f"product {product_id} at branch {branch_id}"
        super().__init__(
            f"Insufficient stock for {where}: available {available}, requested {requested}"
        )


class BatchNotFoundError(StockError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: UUID):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class BatchDisposedError(StockError):
    """Mutation attempted on a disposed (frozen) batch."""

    code: str = "BATCH_DISPOSED"

    def __init__(self, batch_id: UUID, batch_number: str, disposed_at: datetime | None = None):
        self.batch_id = batch_id
        self.batch_number = batch_number
        self.disposed_at = disposed_at
        super().__init__(
            f"Batch {batch_number} ({batch_id}) is disposed and cannot be mutated"
        )


class BatchNotExpiredError(StockError):
    """Disposal requested for a batch that is not expired."""

    code: str = "BATCH_NOT_EXPIRED"

    def __init__(self, batch_id: UUID, days_until_expiry: int | None):
        self.batch_id = batch_id
        self.days_until_expiry = days_until_expiry
        if days_until_expiry is None:
            detail = "has no expiry date"
        else:
            detail = f"expires in {days_until_expiry} day(s)"
        super().__init__(f"Batch {batch_id} is not expired: {detail}")


class BatchNotDisposedError(StockError):
    """Undo requested for a batch that is not disposed."""

    code: str = "BATCH_NOT_DISPOSED"

    def __init__(self, batch_id: UUID):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} is not disposed")


# Catalog exceptions


class CatalogError(FreshstockError):
    """Base exception for catalog lookups."""

    code: str = "CATALOG_ERROR"


class ProductNotFoundError(CatalogError):
    """Product with given ID was not found in the catalog."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: UUID):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class BranchNotFoundError(CatalogError):
    """Branch with given ID was not found in the catalog."""

    code: str = "BRANCH_NOT_FOUND"

    def __init__(self, branch_id: UUID):
        self.branch_id = branch_id
        super().__init__(f"Branch not found: {branch_id}")


# Workflow exceptions


class WorkflowError(FreshstockError):
    """Base exception for transfer workflow errors."""

    code: str = "WORKFLOW_ERROR"


class TransferNotFoundError(WorkflowError):
    """Transfer with given ID was not found."""

    code: str = "TRANSFER_NOT_FOUND"

    def __init__(self, transfer_id: UUID):
        self.transfer_id = transfer_id
        super().__init__(f"Transfer not found: {transfer_id}")


class InvalidTransitionError(WorkflowError):
    """
    Workflow action is not legal from the transfer's current status.

    The message names the status the transfer was actually in.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, transfer_id: UUID, transfer_number: str, current_status: str, action: str):
        self.transfer_id = transfer_id
        self.transfer_number = transfer_number
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} transfer {transfer_number}: "
            f"transfer is in status '{current_status}'"
        )


class ApprovalAuthorityError(WorkflowError):
    """Approver is not authorized for this transfer."""

    code: str = "APPROVAL_NOT_AUTHORIZED"

    def __init__(self, transfer_id: UUID, actor_id: UUID, role: str, reason: str):
        self.transfer_id = transfer_id
        self.actor_id = actor_id
        self.role = role
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} ({role}) may not approve transfer {transfer_id}: {reason}"
        )


# Throttle


class ThrottledError(FreshstockError):
    """
    The same expensive computation ran moments ago and no cached result exists.

    Soft signal: retry after ``retry_after_seconds`` or use fallback data.
    """

    code: str = "THROTTLED"

    def __init__(self, key: str, retry_after_seconds: Decimal, in_flight: bool = False):
        self.key = key
        self.retry_after_seconds = retry_after_seconds
        self.in_flight = in_flight
        super().__init__(
            f"Computation '{key}' is throttled; retry after {retry_after_seconds}s"
        )


# Configuration


class ConfigurationError(FreshstockError):
    """Configuration value is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, message: str):
        self.setting = setting
        super().__init__(f"Invalid configuration '{setting}': {message}")


# Persistence


class ImmutabilityViolationError(FreshstockError):
    """Attempted to modify or delete an append-only audit record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
