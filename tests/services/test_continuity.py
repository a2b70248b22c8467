"""
Tests for objective continuity edges.

Covers:
- Linking an objective to its successor in a later period
- Reading edges from either endpoint
- Self-links, duplicates, unknown types and missing objectives
"""

from uuid import uuid4

import pytest

from okr_kernel.exceptions import InvalidContinuityError, ObjectiveNotFoundError
from okr_kernel.selectors.snapshot_selector import SnapshotSelector


@pytest.fixture
def pair(create_org, create_objective):
    org = create_org()
    source = create_objective(org, period_code="2025-Q1", name="Grow revenue")
    target = create_objective(org, period_code="2025-Q2", name="Grow revenue further")
    return source, target


class TestCreateEdge:

    def test_records_period_codes(self, lifecycle, pair, test_actor_id):
        source, target = pair

        edge = lifecycle.create_continuity(source.id, target.id, "carry_over", test_actor_id, notes="Unfinished")

        assert edge.source_objective_id == source.id
        assert edge.target_objective_id == target.id
        assert edge.source_period_code == "2025-Q1"
        assert edge.target_period_code == "2025-Q2"
        assert edge.continuity_type == "carry_over"
        assert edge.notes == "Unfinished"
        assert edge.created_by_id == test_actor_id

    def test_visible_from_either_end(self, lifecycle, pair, test_actor_id):
        source, target = pair
        edge = lifecycle.create_continuity(source.id, target.id, "evolved", test_actor_id)

        assert lifecycle.continuity.edges_for(source.id) == [edge]
        assert lifecycle.continuity.edges_for(target.id) == [edge]
        assert edge.involves(target.id)

    def test_self_link_rejected(self, lifecycle, pair, test_actor_id):
        source, _ = pair

        with pytest.raises(InvalidContinuityError):
            lifecycle.create_continuity(source.id, source.id, "carry_over", test_actor_id)

    def test_duplicate_rejected(self, lifecycle, pair, test_actor_id):
        source, target = pair
        lifecycle.create_continuity(source.id, target.id, "carry_over", test_actor_id)

        with pytest.raises(InvalidContinuityError):
            lifecycle.create_continuity(source.id, target.id, "split", test_actor_id)

    def test_unique_constraint_catches_concurrent_link(self, lifecycle, pair, test_actor_id, monkeypatch):
        source_id, target_id = (o.id for o in pair)
        lifecycle.create_continuity(source_id, target_id, "carry_over", test_actor_id)
        monkeypatch.setattr(SnapshotSelector, "edge_exists", lambda self, source, target: False)

        with pytest.raises(InvalidContinuityError) as exc_info:
            lifecycle.create_continuity(source_id, target_id, "split", test_actor_id)

        assert exc_info.value.source_objective_id == str(source_id)
        assert exc_info.value.target_objective_id == str(target_id)

    def test_unknown_type_rejected(self, lifecycle, pair, test_actor_id):
        source, target = pair

        with pytest.raises(InvalidContinuityError):
            lifecycle.create_continuity(source.id, target.id, "copied", test_actor_id)

    def test_missing_objective(self, lifecycle, pair, test_actor_id):
        source, _ = pair

        with pytest.raises(ObjectiveNotFoundError):
            lifecycle.create_continuity(source.id, uuid4(), "carry_over", test_actor_id)

    def test_edges_for_missing_objective(self, lifecycle):
        with pytest.raises(ObjectiveNotFoundError):
            lifecycle.continuity.edges_for(uuid4())
