"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Customs values derived from a pricing adjustment must stay explainable long
after the adjustment was applied.  That only works if the inputs (index
entries), the decision (the applied adjustment) and its effects (part price
history) can never be edited in place.  Mistakes are fixed by appending:
a correction entry supersedes an index entry, and a new adjustment follows
an applied one.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements generated by
a flush.  The listeners below inspect the target and raise
ImmutabilityViolationError, which aborts the flush before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``update()`` statements do not fire mapper events.  The only bulk
UPDATE the engine issues is the apply compare-and-set, which is itself
restricted to ``status = 'draft'`` rows.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable                     | Why
--------------------|------------------------------------|-------------------------------
MaterialIndexEntry  | ALWAYS (from creation)             | Prices are corrected by supersession
PartPriceHistory    | ALWAYS (from creation)             | Audit trail of applied changes
PricingAdjustment   | After status = APPLIED / CANCELLED | Terminal states are final

updated_at / updated_by_id are audit metadata and may change on a frozen
adjustment.  The check looks at the status the row HAD, so the DRAFT ->
APPLIED and DRAFT -> CANCELLED transitions themselves pass.

===============================================================================
USAGE
===============================================================================

    from pricing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from pricing_kernel.exceptions import ImmutabilityViolationError
from pricing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_TERMINAL_STATUSES = frozenset({"applied", "cancelled"})


def _blocked(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    """Column attributes with pending changes on target."""
    from sqlalchemy import inspect

    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)
    return changed


def _status_value(value) -> str:
    return getattr(value, "value", value)


def _check_index_entry_immutability(mapper, connection, target):
    """Index entries are append-only; corrections are new rows."""
    raise _blocked(
        "MaterialIndexEntry",
        target,
        "UPDATE",
        "Index entries are append-only; record a correction instead",
    )


def _check_index_entry_delete(mapper, connection, target):
    raise _blocked(
        "MaterialIndexEntry",
        target,
        "DELETE",
        "Index entries are append-only and cannot be deleted",
    )


def _check_price_history_immutability(mapper, connection, target):
    raise _blocked(
        "PartPriceHistory",
        target,
        "UPDATE",
        "Part price history is append-only",
    )


def _check_price_history_delete(mapper, connection, target):
    raise _blocked(
        "PartPriceHistory",
        target,
        "DELETE",
        "Part price history is append-only",
    )


def _check_adjustment_immutability(mapper, connection, target):
    """
    Prevent updates to applied or cancelled PricingAdjustment records.

    Logic:
        1. Old status (history.deleted, else the unchanged value) is terminal:
           block unless only audit metadata changed.
        2. Old status is draft: allow (this covers the draft -> terminal
           transition itself).
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = _status_value(status_history.deleted[0])
    else:
        old_status = _status_value(target.status)

    if old_status not in _TERMINAL_STATUSES:
        return

    changed = [f for f in _changed_fields(target) if f not in _AUDIT_FIELDS]
    if changed:
        raise _blocked(
            "PricingAdjustment",
            target,
            "UPDATE",
            f"Adjustment is {old_status}; fields {sorted(changed)} are frozen",
        )


def _check_adjustment_delete(mapper, connection, target):
    """Applied adjustments are referenced by part history and cannot go."""
    if _status_value(target.status) == "applied":
        raise _blocked(
            "PricingAdjustment",
            target,
            "DELETE",
            "Applied adjustments cannot be deleted",
        )


_LISTENERS = (
    ("MaterialIndexEntry", "before_update", _check_index_entry_immutability),
    ("MaterialIndexEntry", "before_delete", _check_index_entry_delete),
    ("PartPriceHistory", "before_update", _check_price_history_immutability),
    ("PartPriceHistory", "before_delete", _check_price_history_delete),
    ("PricingAdjustment", "before_update", _check_adjustment_immutability),
    ("PricingAdjustment", "before_delete", _check_adjustment_delete),
)


def _model_classes() -> dict:
    from pricing_kernel.models import MaterialIndexEntry, PartPriceHistory, PricingAdjustment

    return {
        "MaterialIndexEntry": MaterialIndexEntry,
        "PartPriceHistory": PartPriceHistory,
        "PricingAdjustment": PricingAdjustment,
    }


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener already registered is not added twice.
    """
    models = _model_classes()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    models = _model_classes()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
