"""
Tests for the Rate Limit Calculator
"""
import pytest
from datetime import datetime, timedelta

from phishsim.core.config import RateLimitConfig
from phishsim.domain.services.rate_limiter import RateLimitCalculator, format_duration

LAUNCH = datetime(2026, 3, 2, 9, 0, 0)


class TestMinimumSendByDate:
    """Tests for calculate_minimum_send_by_date"""

    def test_three_recipients_default_interval(self):
        """3 recipients at 120s need 360s"""
        calculator = RateLimitCalculator(RateLimitConfig(default_send_interval_seconds=120))
        assert calculator.calculate_minimum_send_by_date(LAUNCH, 3) == LAUNCH + timedelta(seconds=360)

    def test_zero_recipients_is_launch(self):
        """No recipients means no spread"""
        calculator = RateLimitCalculator()
        assert calculator.calculate_minimum_send_by_date(LAUNCH, 0) == LAUNCH

    def test_custom_interval(self):
        """Configured interval is used exactly"""
        calculator = RateLimitCalculator(RateLimitConfig(default_send_interval_seconds=45))
        assert calculator.calculate_minimum_send_by_date(LAUNCH, 10) == LAUNCH + timedelta(seconds=450)

    def test_default_config(self):
        """Without config the interval is 120 seconds"""
        assert RateLimitCalculator().minimum_interval == timedelta(seconds=120)


class TestValidate:
    """Tests for validate"""

    def setup_method(self):
        self.calculator = RateLimitCalculator(RateLimitConfig(default_send_interval_seconds=120))

    def test_no_recipients_is_acceptable(self):
        """Zero recipients never warns"""
        assert self.calculator.validate(LAUNCH, LAUNCH + timedelta(seconds=1), 0) is None

    def test_unset_send_by_is_acceptable(self):
        """Unset send-by will be auto-assigned"""
        assert self.calculator.validate(LAUNCH, None, 100) is None

    def test_exactly_minimum_is_acceptable(self):
        """Send-by at the minimum is fine"""
        assert self.calculator.validate(LAUNCH, LAUNCH + timedelta(seconds=360), 3) is None

    def test_after_minimum_is_acceptable(self):
        """Send-by after the minimum is fine"""
        assert self.calculator.validate(LAUNCH, LAUNCH + timedelta(hours=5), 3) is None

    def test_aggressive_window_warns(self):
        """100 recipients in 10 seconds is far too fast"""
        warning = self.calculator.validate(LAUNCH, LAUNCH + timedelta(seconds=10), 100)

        assert warning is not None
        assert warning.is_aggressive is True
        assert warning.provided_interval_seconds == pytest.approx(0.1)
        assert warning.minimum_interval_seconds == 120
        assert warning.total_recipients == 100
        assert warning.minimum_send_by_date == LAUNCH + timedelta(seconds=12000)
        assert warning.provided_send_by_date == LAUNCH + timedelta(seconds=10)
        assert warning.recommended_duration == "3 hours 20 minutes"
        assert "0.1 seconds per recipient" in warning.warning_message
        assert "120 seconds" in warning.warning_message

    def test_one_second_short_warns(self):
        """Just under the minimum still warns"""
        warning = self.calculator.validate(LAUNCH, LAUNCH + timedelta(seconds=359), 3)
        assert warning is not None
        assert warning.recommended_duration == "6 minutes"


class TestFormatDuration:
    """Tests for format_duration"""

    def test_hours_and_minutes(self):
        assert format_duration(timedelta(hours=2, minutes=5)) == "2 hours 5 minutes"

    def test_whole_hours(self):
        assert format_duration(timedelta(hours=3)) == "3 hours"

    def test_minutes(self):
        assert format_duration(timedelta(minutes=40)) == "40 minutes"

    def test_seconds(self):
        assert format_duration(timedelta(seconds=30)) == "30 seconds"
