"""
AdjustmentLifecycleManager tests.

Tests cover:
- create: server-side re-derivation, old price derivation, validation order
- apply: catalog updates, history rows, status transition, zero parts
- Fresh reads: apply uses the catalog as it stands at apply time (earlier
  applications, edited and newly added parts), never the preview
- cancel: draft only, catalog untouched
- Conflicts: double apply, apply after cancel, stale index data
- preview: read-only impact against the live catalog
"""

from datetime import date, datetime, UTC
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from pricing_kernel.exceptions import (
    AdjustmentNotFoundError,
    AlreadyAppliedError,
    FormulaNotFoundError,
    InvalidAdjustmentError,
    InvalidTimelineError,
    MissingIndexDataError,
    StaleAdjustmentError,
    UnsupportedMaterialError,
)
from pricing_kernel.models.part import Part
from pricing_kernel.models.part_price_history import PartPriceHistory
from pricing_kernel.models.pricing_adjustment import AdjustmentStatus, PricingAdjustment


def _adjustment_count(session) -> int:
    return session.execute(select(func.count()).select_from(PricingAdjustment)).scalar_one()


def _history_count(session) -> int:
    return session.execute(select(func.count()).select_from(PartPriceHistory)).scalar_one()


class TestCreate:
    def test_creates_draft_with_derived_prices(self, draft_adjustment, test_actor_id):
        adj = draft_adjustment

        assert adj.status == AdjustmentStatus.DRAFT.value
        assert adj.is_draft
        assert adj.new_average_price == Decimal("2850.0000")
        assert adj.old_average_price == Decimal("2800.0000")
        assert adj.price_change_usd == Decimal("50.0000")
        assert adj.data_months == ["2024-03", "2024-04", "2024-05"]
        assert adj.communication_month == "2024-06"
        assert adj.effective_month == "2024-07"
        assert adj.index_source == "SHSPI"
        assert adj.formula == "3_month_rolling"
        assert adj.formula_breakdown.endswith("= 2850.0000")
        assert adj.adjustment_date == date(2024, 6, 15)
        assert adj.parts_affected == 0
        assert adj.created_by_id == test_actor_id

    def test_explicit_old_price_is_kept(self, lifecycle, seed_index, make_draft, test_actor_id):
        adj = lifecycle.create(make_draft(old_average_price="2700"), test_actor_id)

        assert adj.old_average_price == Decimal("2700")
        assert adj.price_change_usd == Decimal("150.0000")

    def test_claim_within_tolerance_stores_derived_value(
        self, lifecycle, seed_index, make_draft, test_actor_id
    ):
        adj = lifecycle.create(
            make_draft(new_average_price=Decimal("2850.00005")), test_actor_id
        )
        assert adj.new_average_price == Decimal("2850.0000")

    def test_mismatched_new_price_is_stale(
        self, session, lifecycle, seed_index, make_draft, test_actor_id
    ):
        with pytest.raises(StaleAdjustmentError) as exc_info:
            lifecycle.create(make_draft(new_average_price=Decimal("2851")), test_actor_id)

        assert exc_info.value.field == "new_average_price"
        assert exc_info.value.expected == "2850.0000"
        assert _adjustment_count(session) == 0

    def test_quarterly_formula(self, lifecycle, seed_index, make_draft, test_actor_id):
        adj = lifecycle.create(
            make_draft(
                formula="quarterly_standard",
                new_average_price=Decimal("2864.2500"),
                old_average_price="2800",
            ),
            test_actor_id,
        )
        assert adj.new_average_price == Decimal("2864.2500")

    def test_missing_index_month(self, lifecycle, seed_index, make_draft, test_actor_id):
        with pytest.raises(MissingIndexDataError) as exc_info:
            lifecycle.create(
                make_draft(
                    data_months=("2024-04", "2024-05", "2024-06"),
                    communication_month="2024-07",
                    effective_month="2024-08",
                ),
                test_actor_id,
            )
        assert exc_info.value.month == "2024-06"

    def test_old_price_underivable(self, lifecycle, seed_index, make_draft, test_actor_id):
        with pytest.raises(InvalidAdjustmentError) as exc_info:
            lifecycle.create(
                make_draft(material="steel", new_average_price=Decimal("710")),
                test_actor_id,
            )
        assert exc_info.value.field == "old_average_price"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_invalid_name(self, lifecycle, seed_index, make_draft, test_actor_id, name):
        with pytest.raises(InvalidAdjustmentError) as exc_info:
            lifecycle.create(make_draft(name=name), test_actor_id)
        assert exc_info.value.field == "name"

    def test_unsupported_material(self, lifecycle, make_draft, test_actor_id):
        with pytest.raises(UnsupportedMaterialError):
            lifecycle.create(make_draft(material="titanium"), test_actor_id)

    def test_invalid_timeline(self, lifecycle, make_draft, test_actor_id):
        with pytest.raises(InvalidTimelineError) as exc_info:
            lifecycle.create(
                make_draft(communication_month="2024-07", effective_month="2024-07"),
                test_actor_id,
            )
        assert exc_info.value.field == "effective_month"

    def test_unknown_formula(self, lifecycle, make_draft, test_actor_id):
        with pytest.raises(FormulaNotFoundError):
            lifecycle.create(make_draft(formula="median"), test_actor_id)

    @pytest.mark.parametrize("price", ["0", "-2850", "abc"])
    def test_invalid_new_price(self, lifecycle, make_draft, test_actor_id, price):
        with pytest.raises(InvalidAdjustmentError) as exc_info:
            lifecycle.create(make_draft(new_average_price=price), test_actor_id)
        assert exc_info.value.field == "new_average_price"


class TestApply:
    def test_apply_updates_catalog_and_history(
        self, session, lifecycle, draft_adjustment, seed_parts, test_actor_id
    ):
        result = lifecycle.apply(draft_adjustment.id, test_actor_id)

        assert result.parts_updated == 2
        assert result.price_changes_recorded == 2
        assert result.total_cost_impact == Decimal("0.625")

        assert seed_parts["AL-001"].standard_value == Decimal("45.125")
        assert seed_parts["AL-001"].material_price == Decimal("7.125")
        assert seed_parts["AL-002"].standard_value == Decimal("120.5")
        assert seed_parts["AL-002"].material_price == Decimal("28.5")
        assert seed_parts["AL-003"].standard_value == Decimal("10.00")
        assert seed_parts["ST-001"].standard_value == Decimal("30.00")
        assert _history_count(session) == 2

    def test_apply_marks_adjustment_applied(
        self, lifecycle, draft_adjustment, test_actor_id, deterministic_clock
    ):
        lifecycle.apply(draft_adjustment.id, test_actor_id)

        adj = draft_adjustment
        assert adj.status == AdjustmentStatus.APPLIED.value
        assert adj.applied_by_id == test_actor_id
        assert adj.applied_at is not None
        assert adj.parts_affected == 2
        assert adj.total_cost_impact == Decimal("0.625")

    def test_history_rows(self, session, lifecycle, draft_adjustment, seed_parts, test_actor_id):
        lifecycle.apply(draft_adjustment.id, test_actor_id)

        row = session.execute(
            select(PartPriceHistory).where(
                PartPriceHistory.part_id == seed_parts["AL-001"].id
            )
        ).scalar_one()
        assert row.adjustment_id == draft_adjustment.id
        assert row.old_standard_value == Decimal("45.00")
        assert row.new_standard_value == Decimal("45.125")
        assert row.old_material_price == Decimal("7.0000")
        assert row.new_material_price == Decimal("7.125")
        assert row.price_adjustment_per_kg == Decimal("0.05")
        assert row.effective_date == date(2024, 7, 1)

    def test_apply_twice_is_rejected(
        self, session, lifecycle, draft_adjustment, seed_parts, test_actor_id
    ):
        lifecycle.apply(draft_adjustment.id, test_actor_id)

        with pytest.raises(AlreadyAppliedError) as exc_info:
            lifecycle.apply(draft_adjustment.id, test_actor_id)

        assert exc_info.value.current_status == "applied"
        assert seed_parts["AL-001"].standard_value == Decimal("45.125")
        assert _history_count(session) == 2

    def test_apply_unknown_adjustment(self, lifecycle, test_actor_id):
        with pytest.raises(AdjustmentNotFoundError):
            lifecycle.apply(uuid4(), test_actor_id)

    def test_apply_with_no_parts(self, lifecycle, seed_index, make_draft, test_actor_id):
        adj = lifecycle.create(
            make_draft(
                material="steel",
                new_average_price=Decimal("710"),
                old_average_price="700",
            ),
            test_actor_id,
        )

        result = lifecycle.apply(adj.id, test_actor_id)

        assert result.parts_updated == 0
        assert result.total_cost_impact == 0
        assert adj.status == AdjustmentStatus.APPLIED.value

    def test_apply_after_index_correction_is_stale(
        self, lifecycle, index_service, seed_index, draft_adjustment, seed_parts, test_actor_id
    ):
        april = seed_index[("aluminum", "2024-04")]
        index_service.record_correction(april.id, "3000", test_actor_id)

        with pytest.raises(StaleAdjustmentError) as exc_info:
            lifecycle.apply(draft_adjustment.id, test_actor_id)

        assert exc_info.value.adjustment_id == str(draft_adjustment.id)
        assert draft_adjustment.is_draft
        assert seed_parts["AL-001"].standard_value == Decimal("45.00")

    def test_apply_logs_result(self, lifecycle, draft_adjustment, test_actor_id, captured_logs):
        lifecycle.apply(draft_adjustment.id, test_actor_id)

        applied = [r for r in captured_logs() if r["message"] == "adjustment_applied"]
        assert len(applied) == 1
        assert applied[0]["adjustment_id"] == str(draft_adjustment.id)
        assert applied[0]["parts_updated"] == 2


def _history_for(session, adjustment_id, part) -> PartPriceHistory:
    return session.execute(
        select(PartPriceHistory).where(
            PartPriceHistory.adjustment_id == adjustment_id,
            PartPriceHistory.part_id == part.id,
        )
    ).scalar_one()


class TestFreshReads:
    """apply() prices the catalog as it is at apply time, not as it was previewed."""

    def test_second_draft_builds_on_first_application(
        self, session, lifecycle, draft_adjustment, make_draft, seed_parts, test_actor_id
    ):
        # Both drafts exist before either is applied.
        buffered = lifecycle.create(
            make_draft(
                name="Q3 2024 Aluminum (buffered)",
                formula="quarterly_standard",
                new_average_price=Decimal("2864.2500"),
                old_average_price="2850",
            ),
            test_actor_id,
        )

        lifecycle.apply(draft_adjustment.id, test_actor_id)
        lifecycle.apply(buffered.id, test_actor_id)

        for number in ("AL-001", "AL-002"):
            part = seed_parts[number]
            first = _history_for(session, draft_adjustment.id, part)
            second = _history_for(session, buffered.id, part)
            assert second.old_standard_value == first.new_standard_value
            assert second.old_material_price == first.new_material_price

        second_al1 = _history_for(session, buffered.id, seed_parts["AL-001"])
        assert second_al1.old_standard_value == Decimal("45.125")
        assert second_al1.new_standard_value == Decimal("45.160625")
        assert second_al1.price_adjustment_per_kg == Decimal("0.01425")
        assert seed_parts["AL-001"].standard_value == Decimal("45.160625")
        assert seed_parts["AL-002"].standard_value == Decimal("120.6425")

    def test_part_edited_after_preview_uses_live_values(
        self, session, lifecycle, draft_adjustment, seed_parts, test_actor_id
    ):
        preview = lifecycle.preview(draft_adjustment.id)
        previewed = {i.part_number: i for i in preview.impacts}
        assert previewed["AL-001"].new_standard_value == Decimal("45.125")

        bracket = seed_parts["AL-001"]
        bracket.material_weight_kg = Decimal("5")
        bracket.standard_value = Decimal("50.00")
        session.flush()

        result = lifecycle.apply(draft_adjustment.id, test_actor_id)

        row = _history_for(session, draft_adjustment.id, bracket)
        assert row.material_weight_kg == Decimal("5")
        assert row.old_standard_value == Decimal("50.00")
        assert row.new_standard_value == Decimal("50.25")
        assert row.new_material_price == Decimal("14.25")
        assert bracket.standard_value == Decimal("50.25")
        # 5 kg * 0.05 + 10 kg * 0.05, not the previewed 0.625
        assert result.total_cost_impact == Decimal("0.75")
        assert preview.summary.total_cost_impact == Decimal("0.625")

    def test_part_added_after_create_is_priced(
        self, session, lifecycle, draft_adjustment, seed_parts, test_actor_id
    ):
        late = Part(
            part_number="AL-004",
            description="Aluminum cover",
            material="aluminum",
            material_weight_kg=Decimal("4"),
            standard_value=Decimal("60.00"),
            created_by_id=test_actor_id,
        )
        session.add(late)
        session.flush()

        result = lifecycle.apply(draft_adjustment.id, test_actor_id)

        assert result.parts_updated == 3
        assert _history_for(session, draft_adjustment.id, late).new_standard_value == Decimal(
            "60.2"
        )


class TestCancel:
    def test_cancel_draft(self, lifecycle, draft_adjustment, seed_parts, test_actor_id):
        adj = lifecycle.cancel(draft_adjustment.id, test_actor_id, reason="superseded")

        assert adj.status == AdjustmentStatus.CANCELLED.value
        assert adj.cancel_reason == "superseded"
        assert adj.cancelled_by_id == test_actor_id
        assert adj.cancelled_at == datetime(2024, 6, 15, 12, 0, tzinfo=UTC)
        assert seed_parts["AL-001"].standard_value == Decimal("45.00")

    def test_apply_cancelled_is_rejected(self, lifecycle, draft_adjustment, test_actor_id):
        lifecycle.cancel(draft_adjustment.id, test_actor_id)

        with pytest.raises(AlreadyAppliedError) as exc_info:
            lifecycle.apply(draft_adjustment.id, test_actor_id)
        assert exc_info.value.current_status == "cancelled"

    def test_cancel_applied_is_rejected(self, lifecycle, draft_adjustment, test_actor_id):
        lifecycle.apply(draft_adjustment.id, test_actor_id)

        with pytest.raises(AlreadyAppliedError) as exc_info:
            lifecycle.cancel(draft_adjustment.id, test_actor_id)
        assert exc_info.value.operation == "cancel"

    def test_cancel_twice_is_rejected(self, lifecycle, draft_adjustment, test_actor_id):
        lifecycle.cancel(draft_adjustment.id, test_actor_id)
        with pytest.raises(AlreadyAppliedError):
            lifecycle.cancel(draft_adjustment.id, test_actor_id)

    def test_cancel_unknown(self, lifecycle, test_actor_id):
        with pytest.raises(AdjustmentNotFoundError):
            lifecycle.cancel(uuid4(), test_actor_id)


class TestPreview:
    def test_preview_matches_apply_and_writes_nothing(
        self, session, lifecycle, draft_adjustment, seed_parts, test_actor_id
    ):
        report = lifecycle.preview(draft_adjustment.id)

        assert report.summary.parts_affected == 2
        assert report.summary.total_parts == 3
        assert report.summary.total_cost_impact == Decimal("0.625")
        assert seed_parts["AL-001"].standard_value == Decimal("45.00")
        assert _history_count(session) == 0
        assert draft_adjustment.is_draft

    def test_preview_impact_direct(self, lifecycle, seed_parts):
        report = lifecycle.preview_impact("steel", "700", "800")

        assert report.summary.parts_affected == 1
        assert report.impacts[0].price_impact_per_part == Decimal("0.5")

    def test_preview_unsupported_material(self, lifecycle):
        with pytest.raises(UnsupportedMaterialError):
            lifecycle.preview_impact("copper", "1", "2")
