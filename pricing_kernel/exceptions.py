"""
Typed Exception Hierarchy for the Pricing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the API facade, the CLI, a UI) must be able to tell a bad request
apart from a state conflict and from a transient write failure without
parsing message strings.  Every exception here therefore has:

  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. A RETRIABLE class attribute (may the caller simply try again?)
  4. Structured DATA attributes (offending field, expected vs. actual, ids)

Example:
    try:
        manager.apply(adjustment_id, actor_id)
    except AlreadyAppliedError as e:
        return {"error": e.code, "status": e.status}   # re-fetch, don't retry
    except ApplyFailedError as e:
        schedule_retry(e.adjustment_id)                 # nothing was changed

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PricingKernelError (base)
    |
    +-- ValidationError                 caller-correctable, reported before
    |   +-- InvalidTimelineError        any mutation, never retried
    |   +-- InvalidFormulaInputError
    |   +-- FormulaNotFoundError
    |   +-- InvalidAdjustmentError
    |   +-- UnsupportedMaterialError
    |   +-- InvalidIndexEntryError
    |   +-- MissingIndexDataError
    |
    +-- NotFoundError
    |   +-- AdjustmentNotFoundError
    |   +-- IndexEntryNotFoundError
    |   +-- PartNotFoundError
    |
    +-- ConflictError                   operation no longer valid for the
    |   +-- AlreadyAppliedError         current state; re-fetch and decide
    |   +-- StaleAdjustmentError
    |   +-- DuplicateIndexEntryError
    |   +-- StaleIndexEntryError
    |
    +-- ApplyFailedError                retriable; adjustment left in draft
    |
    +-- ImmutabilityViolationError      attempted write to a frozen record

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|------------------------------------------
Validation   | INVALID_TIMELINE          | Month ordering violated / bad month key
             | INVALID_FORMULA_INPUT     | Not exactly 3 prices, or a bad price
             | FORMULA_NOT_FOUND         | Unknown formula id
             | INVALID_ADJUSTMENT        | Draft payload field invalid
             | UNSUPPORTED_MATERIAL      | Material not in the configured set
             | INVALID_INDEX_ENTRY       | Index entry payload invalid
             | MISSING_INDEX_DATA        | No canonical price for a month
-------------|---------------------------|------------------------------------------
Not found    | ADJUSTMENT_NOT_FOUND      | Unknown adjustment id
             | INDEX_ENTRY_NOT_FOUND     | Unknown index entry id
             | PART_NOT_FOUND            | Catalog has no such part
-------------|---------------------------|------------------------------------------
Conflict     | ALREADY_APPLIED           | Adjustment is not in draft
             | STALE_ADJUSTMENT          | Stored price no longer reproducible
             | DUPLICATE_INDEX_ENTRY     | Canonical entry already exists
             | STALE_INDEX_ENTRY         | Correcting an already-superseded entry
-------------|---------------------------|------------------------------------------
Mutation     | APPLY_FAILED              | Catalog write failed; rolled back
-------------|---------------------------|------------------------------------------
Integrity    | IMMUTABILITY_VIOLATION    | Update/delete of a frozen record

===============================================================================
"""

from typing import Any


class PricingKernelError(Exception):
    """
    Base exception for all pricing kernel errors.

    All subclasses have a ``code`` class attribute for machine-readable
    identification and a ``retriable`` flag.
    """

    code: str = "PRICING_KERNEL_ERROR"
    status: int = 500
    retriable: bool = False

    def details(self) -> dict[str, Any]:
        """Structured attributes of this error (public, non-callable)."""
        return {
            key: value
            for key, value in vars(self).items()
            if not key.startswith("_") and key != "args"
        }

    def to_dict(self) -> dict[str, Any]:
        """Serializable error payload for API responses."""
        return {
            "code": self.code,
            "message": str(self),
            "details": self.details(),
            "retriable": self.retriable,
        }


# Validation errors


class ValidationError(PricingKernelError):
    """Base exception for caller-correctable input errors."""

    code: str = "VALIDATION_ERROR"
    status: int = 400


class InvalidTimelineError(ValidationError):
    """Timeline months are malformed or out of order."""

    code: str = "INVALID_TIMELINE"

    def __init__(
        self,
        field: str,
        reason: str,
        expected: Any = None,
        actual: Any = None,
    ):
        self.field = field
        self.reason = reason
        self.expected = expected
        self.actual = actual
        super().__init__(f"Invalid timeline ({field}): {reason}")


class InvalidFormulaInputError(ValidationError):
    """Formula inputs are not exactly three finite, positive prices."""

    code: str = "INVALID_FORMULA_INPUT"

    def __init__(
        self,
        formula_id: str,
        reason: str,
        index: int | None = None,
        expected: Any = None,
        actual: Any = None,
    ):
        self.formula_id = formula_id
        self.reason = reason
        self.index = index
        self.expected = expected
        self.actual = actual
        where = f" at index {index}" if index is not None else ""
        super().__init__(f"Invalid input for formula '{formula_id}'{where}: {reason}")


class FormulaNotFoundError(ValidationError):
    """No formula is registered under the given id."""

    code: str = "FORMULA_NOT_FOUND"

    def __init__(self, formula_id: str, available: list[str]):
        self.formula_id = formula_id
        self.available = available
        super().__init__(
            f"Unknown pricing formula: {formula_id}. "
            f"Available: {', '.join(available)}"
        )


class InvalidAdjustmentError(ValidationError):
    """A pricing adjustment draft field is invalid."""

    code: str = "INVALID_ADJUSTMENT"

    def __init__(
        self,
        field: str,
        reason: str,
        expected: Any = None,
        actual: Any = None,
    ):
        self.field = field
        self.reason = reason
        self.expected = expected
        self.actual = actual
        super().__init__(f"Invalid adjustment field '{field}': {reason}")


class UnsupportedMaterialError(ValidationError):
    """Material is not part of the configured material set."""

    code: str = "UNSUPPORTED_MATERIAL"

    def __init__(self, material: str, supported: list[str]):
        self.field = "material"
        self.material = material
        self.supported = supported
        super().__init__(
            f"Unsupported material: {material}. Supported: {', '.join(supported)}"
        )


class InvalidIndexEntryError(ValidationError):
    """A material index entry payload is invalid."""

    code: str = "INVALID_INDEX_ENTRY"

    def __init__(self, field: str, reason: str, actual: Any = None):
        self.field = field
        self.reason = reason
        self.actual = actual
        super().__init__(f"Invalid index entry field '{field}': {reason}")


class MissingIndexDataError(ValidationError):
    """No canonical index price exists for a requested month."""

    code: str = "MISSING_INDEX_DATA"

    def __init__(self, material: str, month: str, index_source: str):
        self.material = material
        self.month = month
        self.index_source = index_source
        super().__init__(
            f"No price data found for {material} in {month} (source {index_source})"
        )


# Not-found errors


class NotFoundError(PricingKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"
    status: int = 404


class AdjustmentNotFoundError(NotFoundError):
    """Pricing adjustment with given ID was not found."""

    code: str = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, adjustment_id: str):
        self.adjustment_id = adjustment_id
        super().__init__(f"Pricing adjustment not found: {adjustment_id}")


class IndexEntryNotFoundError(NotFoundError):
    """Material index entry with given ID was not found."""

    code: str = "INDEX_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Material index entry not found: {entry_id}")


class PartNotFoundError(NotFoundError):
    """Part with given ID does not exist in the catalog."""

    code: str = "PART_NOT_FOUND"

    def __init__(self, part_id: str):
        self.part_id = part_id
        super().__init__(f"Part not found: {part_id}")


# Conflict errors


class ConflictError(PricingKernelError):
    """Base exception for operations invalidated by current state."""

    code: str = "CONFLICT"
    status: int = 409


class AlreadyAppliedError(ConflictError):
    """Adjustment is no longer in draft (applied or cancelled)."""

    code: str = "ALREADY_APPLIED"

    def __init__(self, adjustment_id: str, status: str, operation: str = "apply"):
        self.adjustment_id = adjustment_id
        self.current_status = status
        self.expected_status = "draft"
        self.operation = operation
        super().__init__(
            f"Cannot {operation} pricing adjustment {adjustment_id}: "
            f"status is '{status}', expected 'draft'"
        )


class StaleAdjustmentError(ConflictError):
    """Stored average price is not reproducible from current index data."""

    code: str = "STALE_ADJUSTMENT"

    def __init__(
        self,
        field: str,
        expected: Any,
        actual: Any,
        adjustment_id: str | None = None,
    ):
        self.field = field
        self.expected = expected
        self.actual = actual
        self.adjustment_id = adjustment_id
        super().__init__(
            f"Stale {field}: recomputed {expected}, supplied {actual}"
        )


class DuplicateIndexEntryError(ConflictError):
    """A canonical entry already exists for (material, month, source)."""

    code: str = "DUPLICATE_INDEX_ENTRY"

    def __init__(self, material: str, month: str, index_source: str, existing_id: str):
        self.material = material
        self.month = month
        self.index_source = index_source
        self.existing_id = existing_id
        super().__init__(
            f"Index entry already exists for {material} {month} ({index_source}): "
            f"{existing_id}; record a correction instead"
        )


class StaleIndexEntryError(ConflictError):
    """Correction targets an entry that has already been superseded."""

    code: str = "STALE_INDEX_ENTRY"

    def __init__(self, entry_id: str, superseded_by_id: str):
        self.entry_id = entry_id
        self.superseded_by_id = superseded_by_id
        super().__init__(
            f"Index entry {entry_id} was already superseded by {superseded_by_id}"
        )


# Mutation failures


class ApplyFailedError(PricingKernelError):
    """Catalog mutation failed during apply; every change was rolled back."""

    code: str = "APPLY_FAILED"
    status: int = 503
    retriable: bool = True

    def __init__(self, adjustment_id: str, reason: str, stage: str | None = None):
        self.adjustment_id = adjustment_id
        self.reason = reason
        self.stage = stage
        super().__init__(
            f"Applying pricing adjustment {adjustment_id} failed and was rolled back: {reason}"
        )


# Integrity


class ImmutabilityViolationError(PricingKernelError):
    """Attempted to modify or delete a frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"
    status: int = 409

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
