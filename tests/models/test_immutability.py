"""
Append-only persistence tests.

Verifies:
- MaterialIndexEntry can never be updated or deleted
- PartPriceHistory can never be updated or deleted
- PricingAdjustment is frozen once applied or cancelled, except for
  updated_at / updated_by_id audit metadata
- Draft adjustments stay editable
"""

from contextlib import contextmanager
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from pricing_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from pricing_kernel.exceptions import ImmutabilityViolationError
from pricing_kernel.models.material_index import MaterialIndexEntry
from pricing_kernel.models.part_price_history import PartPriceHistory


@contextmanager
def disabled_immutability():
    """Disable the ORM listeners for the duration of the block."""
    unregister_immutability_listeners()
    try:
        yield
    finally:
        register_immutability_listeners()


def _flush_in_savepoint(session):
    with session.begin_nested():
        session.flush()


class TestIndexEntryImmutability:
    def test_update_is_blocked(self, session, seed_index):
        dto = seed_index[("aluminum", "2024-03")]
        entry = session.get(MaterialIndexEntry, dto.id)

        entry.price_usd_per_mt = Decimal("9999.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            _flush_in_savepoint(session)

        assert exc_info.value.entity_type == "MaterialIndexEntry"
        assert "correction" in exc_info.value.reason

    def test_delete_is_blocked(self, session, seed_index):
        dto = seed_index[("steel", "2024-04")]
        entry = session.get(MaterialIndexEntry, dto.id)

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session)

    def test_violation_is_logged(self, session, seed_index, captured_logs):
        entry = session.get(MaterialIndexEntry, seed_index[("aluminum", "2024-04")].id)

        entry.data_period = "edited"
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session)

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_type"] == "MaterialIndexEntry"
        assert blocked[0]["operation"] == "UPDATE"

    def test_disabled_listeners_allow_update(self, session, seed_index):
        entry = session.get(MaterialIndexEntry, seed_index[("aluminum", "2024-05")].id)

        with disabled_immutability():
            entry.data_period = "restated"
            _flush_in_savepoint(session)

        session.refresh(entry)
        assert entry.data_period == "restated"


class TestPriceHistoryImmutability:
    @pytest.fixture
    def history_row(self, session, lifecycle, draft_adjustment, test_actor_id):
        lifecycle.apply(draft_adjustment.id, test_actor_id)
        return session.execute(select(PartPriceHistory).limit(1)).scalar_one()

    def test_update_is_blocked(self, session, history_row):
        history_row.new_standard_value = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            _flush_in_savepoint(session)
        assert exc_info.value.entity_type == "PartPriceHistory"

    def test_delete_is_blocked(self, session, history_row):
        session.delete(history_row)
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session)


class TestAdjustmentImmutability:
    def test_draft_is_editable(self, session, draft_adjustment):
        draft_adjustment.name = "Renamed draft"
        _flush_in_savepoint(session)

        session.refresh(draft_adjustment)
        assert draft_adjustment.name == "Renamed draft"

    def test_applied_fields_are_frozen(self, session, lifecycle, draft_adjustment, test_actor_id):
        lifecycle.apply(draft_adjustment.id, test_actor_id)
        session.refresh(draft_adjustment)

        draft_adjustment.new_average_price = Decimal("3000.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            _flush_in_savepoint(session)
        assert "new_average_price" in exc_info.value.reason

    def test_applied_status_cannot_be_reverted(
        self, session, lifecycle, draft_adjustment, test_actor_id
    ):
        lifecycle.apply(draft_adjustment.id, test_actor_id)
        session.refresh(draft_adjustment)

        draft_adjustment.status = "draft"
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session)

    def test_applied_cannot_be_deleted(self, session, lifecycle, draft_adjustment, test_actor_id):
        lifecycle.apply(draft_adjustment.id, test_actor_id)
        session.refresh(draft_adjustment)

        session.delete(draft_adjustment)
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session)

    def test_cancelled_fields_are_frozen(
        self, session, lifecycle, draft_adjustment, test_actor_id
    ):
        lifecycle.cancel(draft_adjustment.id, test_actor_id, reason="superseded")
        session.refresh(draft_adjustment)

        draft_adjustment.name = "Edited after cancel"
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session)

    def test_audit_metadata_stays_writable(
        self, session, lifecycle, draft_adjustment, test_actor_id
    ):
        lifecycle.apply(draft_adjustment.id, test_actor_id)
        session.refresh(draft_adjustment)
        reviewer = uuid4()

        draft_adjustment.updated_by_id = reviewer
        _flush_in_savepoint(session)

        session.refresh(draft_adjustment)
        assert draft_adjustment.updated_by_id == reviewer
        assert draft_adjustment.status == "applied"
