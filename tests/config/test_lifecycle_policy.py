"""
Tests for lifecycle policy loading.

get_active_config() is the only runtime entrypoint.  Unknown keys and
out-of-range values are rejected; the checksum is deterministic.
"""

from decimal import Decimal

import pytest

from okr_config import LifecyclePolicy, get_active_config
from okr_config.bridges import approved_statuses, build_grading_policy, operational_unit
from okr_config.loader import compute_checksum, parse_policy
from okr_kernel.domain.lifecycle import PeriodType


def _write(tmp_path, text: str):
    path = tmp_path / "policy.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaultPolicy:

    def test_shipped_defaults(self):
        policy = get_active_config()

        assert policy.name == "default"
        assert policy.timezone_offset_hours == 9
        assert policy.operational_unit == "quarter"
        assert policy.approved_goal_set_statuses == ("approved", "finalized")
        assert policy.lower_is_better_units == ("일", "days", "day")
        assert policy.higher_is_better_thresholds.S == Decimal("120")
        assert policy.transition_retry_attempts == 3
        assert len(policy.checksum) == 64

    def test_load_is_logged(self, captured_logs):
        policy = get_active_config()

        (record,) = [r for r in captured_logs() if r["message"] == "okr_config_loaded"]
        assert record["checksum"] == policy.checksum
        assert record["policy_name"] == "default"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestParsing:

    def test_empty_file_is_product_defaults(self, tmp_path):
        policy = get_active_config(_write(tmp_path, ""))

        assert policy.timezone_offset_hours == 0
        assert policy.ranking_size == 5
        assert policy.snapshot_on_close is True

    def test_partial_thresholds_fill_from_defaults(self):
        policy = parse_policy({"fallback_grade_thresholds": {"higher_is_better": {"S": 130}}})

        assert policy.higher_is_better_thresholds.S == Decimal("130")
        assert policy.higher_is_better_thresholds.A == Decimal("110")
        assert policy.lower_is_better_thresholds.D == Decimal("999999")

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="snapshot_on_clse"):
            parse_policy({"snapshot_on_clse": False})

    def test_unknown_grade_rejected(self):
        with pytest.raises(ValueError, match="higher_is_better"):
            parse_policy({"fallback_grade_thresholds": {"higher_is_better": {"F": 10}}})

    @pytest.mark.parametrize(
        "data",
        [
            {"fiscal_year_start_month": 13},
            {"timezone_offset_hours": 15},
            {"operational_unit": "month"},
            {"ranking_size": -1},
            {"transition_retry_attempts": 0},
            {"approved_goal_set_statuses": []},
        ],
    )
    def test_out_of_range_rejected(self, data):
        with pytest.raises(ValueError):
            parse_policy(data)


class TestChecksum:

    def test_same_contents_same_checksum(self, tmp_path):
        first = get_active_config(_write(tmp_path, "ranking_size: 3\n"))
        second = parse_policy({"ranking_size": 3})

        assert first.checksum == second.checksum

    def test_contents_change_checksum(self):
        assert parse_policy({"ranking_size": 3}).checksum != parse_policy({"ranking_size": 4}).checksum

    def test_checksum_ignores_checksum_field(self):
        policy = LifecyclePolicy()

        assert compute_checksum(policy) == compute_checksum(parse_policy({}))


class TestBridges:

    def test_grading_policy(self):
        policy = parse_policy({
            "lower_is_better_units": ["hours"],
            "fallback_grade_thresholds": {"lower_is_better": {"S": 70}},
        })

        grading = build_grading_policy(policy)

        assert grading.lower_is_better_units == frozenset({"hours"})
        assert grading.default_lower_is_better_criteria["S"] == Decimal("70")
        assert grading.default_criteria["B"] == Decimal("100")

    def test_operational_unit_and_statuses(self):
        policy = parse_policy({"operational_unit": "half", "approved_goal_set_statuses": ["signed_off"]})

        assert operational_unit(policy) is PeriodType.HALF
        assert approved_statuses(policy) == frozenset({"signed_off"})
