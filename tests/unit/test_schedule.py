"""Tests for inzikt.core.schedule."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from inzikt.core.schedule import (
    compute_next_run,
    cron_to_human,
    describe_schedule,
    ensure_utc,
    validate_cron_expression,
)
from inzikt.models.schedule import JobFrequency

NOW = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


class TestComputeNextRun:
    def test_daily_runs_at_three_next_day(self):
        assert compute_next_run(JobFrequency.DAILY, None, NOW) == datetime(2024, 1, 2, 3, 0, tzinfo=UTC)

    def test_daily_before_three_still_next_day(self):
        now = datetime(2024, 1, 1, 1, 30, tzinfo=UTC)
        assert compute_next_run("daily", None, now) == datetime(2024, 1, 2, 3, 0, tzinfo=UTC)

    def test_hourly_truncates_to_next_hour(self):
        now = datetime(2024, 1, 1, 10, 42, 17, 500, tzinfo=UTC)
        assert compute_next_run(JobFrequency.HOURLY, None, now) == datetime(2024, 1, 1, 11, 0, tzinfo=UTC)

    def test_hourly_crosses_midnight(self):
        now = datetime(2024, 1, 1, 23, 5, tzinfo=UTC)
        assert compute_next_run(JobFrequency.HOURLY, None, now) == datetime(2024, 1, 2, 0, 0, tzinfo=UTC)

    def test_weekly_seven_days_ahead(self):
        assert compute_next_run(JobFrequency.WEEKLY, None, NOW) == datetime(2024, 1, 8, 3, 0, tzinfo=UTC)

    def test_monthly_first_of_next_month(self):
        now = datetime(2024, 1, 31, 12, 0, tzinfo=UTC)
        assert compute_next_run(JobFrequency.MONTHLY, None, now) == datetime(2024, 2, 1, 3, 0, tzinfo=UTC)

    def test_monthly_december_rolls_year(self):
        now = datetime(2024, 12, 15, 8, 0, tzinfo=UTC)
        assert compute_next_run(JobFrequency.MONTHLY, None, now) == datetime(2025, 1, 1, 3, 0, tzinfo=UTC)

    def test_custom_evaluates_cron(self):
        # 09:30 on weekdays; 2024-01-01 is a Monday and 10:00 is past the slot
        result = compute_next_run(JobFrequency.CUSTOM, "30 9 * * 1-5", NOW)
        assert result == datetime(2024, 1, 2, 9, 30, tzinfo=UTC)

    def test_custom_weekday_numbers_follow_crontab(self):
        # 1 = Monday, 0 and 7 = Sunday
        assert compute_next_run(JobFrequency.CUSTOM, "0 9 * * 1", NOW) == datetime(2024, 1, 8, 9, 0, tzinfo=UTC)
        assert compute_next_run(JobFrequency.CUSTOM, "0 9 * * 0", NOW) == datetime(2024, 1, 7, 9, 0, tzinfo=UTC)
        assert compute_next_run(JobFrequency.CUSTOM, "0 9 * * 7", NOW) == datetime(2024, 1, 7, 9, 0, tzinfo=UTC)

    def test_custom_weekend_list(self):
        result = compute_next_run(JobFrequency.CUSTOM, "0 12 * * 0,6", NOW)
        assert result == datetime(2024, 1, 6, 12, 0, tzinfo=UTC)

    def test_custom_exact_match_moves_forward(self):
        result = compute_next_run(JobFrequency.CUSTOM, "0 10 * * *", NOW)
        assert result == datetime(2024, 1, 2, 10, 0, tzinfo=UTC)

    def test_custom_without_expression_falls_back_to_midnight(self):
        assert compute_next_run(JobFrequency.CUSTOM, None, NOW) == datetime(2024, 1, 2, 0, 0, tzinfo=UTC)

    def test_custom_invalid_expression_falls_back_to_midnight(self):
        assert compute_next_run(JobFrequency.CUSTOM, "not a cron", NOW) == datetime(
            2024, 1, 2, 0, 0, tzinfo=UTC
        )

    @pytest.mark.parametrize("frequency", list(JobFrequency))
    def test_always_strictly_after_now(self, frequency):
        assert compute_next_run(frequency, "*/5 * * * *", NOW) > NOW

    def test_pure_for_fixed_now(self):
        first = compute_next_run(JobFrequency.WEEKLY, None, NOW)
        second = compute_next_run(JobFrequency.WEEKLY, None, NOW)
        assert first == second

    def test_naive_now_treated_as_utc(self):
        naive = datetime(2024, 1, 1, 10, 0)
        assert compute_next_run(JobFrequency.DAILY, None, naive) == datetime(2024, 1, 2, 3, 0, tzinfo=UTC)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValueError):
            compute_next_run("fortnightly", None, NOW)


def test_ensure_utc_converts_offsets():
    cet = datetime(2024, 1, 1, 11, 0, tzinfo=timezone(timedelta(hours=1)))
    assert ensure_utc(cet) == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
    assert ensure_utc(cet).tzinfo is UTC


class TestValidateCron:
    def test_valid(self):
        assert validate_cron_expression("0 9 * * 1-5") == (True, "")

    def test_wrong_field_count(self):
        valid, err = validate_cron_expression("0 9 * *")
        assert valid is False
        assert "Expected 5 fields" in err

    def test_weekday_out_of_range(self):
        valid, _ = validate_cron_expression("0 9 * * 8")
        assert valid is False

    def test_out_of_range(self):
        valid, err = validate_cron_expression("61 9 * * *")
        assert valid is False
        assert err.startswith("Invalid cron expression")


class TestCronToHuman:
    def test_every_minute(self):
        assert cron_to_human("* * * * *") == "Every minute"

    def test_every_n_minutes(self):
        assert cron_to_human("*/15 * * * *") == "Every 15 minutes"

    def test_every_n_hours(self):
        assert cron_to_human("0 */6 * * *") == "Every 6 hours"

    def test_daily(self):
        assert cron_to_human("30 9 * * *") == "Every day at 9:30 UTC"

    def test_weekdays(self):
        assert cron_to_human("0 8 * * 1-5") == "Weekdays at 8:00 UTC"

    def test_named_weekday(self):
        assert cron_to_human("0 8 * * mon") == "Every Monday at 8:00 UTC"

    def test_monthly_ordinal(self):
        assert cron_to_human("0 4 2 * *") == "2nd of every month at 4:00 UTC"
        assert cron_to_human("0 4 11 * *") == "11th of every month at 4:00 UTC"

    def test_unrecognised_returned_verbatim(self):
        assert cron_to_human("0 4 * 6 *") == "0 4 * 6 *"


def test_describe_schedule():
    assert describe_schedule(JobFrequency.HOURLY) == "Every hour"
    assert describe_schedule(JobFrequency.DAILY) == "Every day at 3:00 UTC"
    assert describe_schedule(JobFrequency.CUSTOM, "0 8 * * 1-5") == "Weekdays at 8:00 UTC"
    assert describe_schedule(JobFrequency.CUSTOM) == "Every day at 0:00 UTC"
