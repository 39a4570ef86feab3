"""Tests for formatting utilities."""

from datetime import datetime

from strava_bridge.formatters import (
    format_activity_message,
    format_distance,
    format_duration,
    format_elevation,
    format_local_datetime,
    format_pace,
)
from strava_bridge.models import DetailedActivity
from tests.fixtures.activity_fixtures import DETAILED_ACTIVITY, RIDE_ACTIVITY


class TestFormatters:
    """Test formatting functions."""

    def test_format_distance_meters(self):
        """Test distance formatting in meters."""
        assert format_distance(1000, "meters") == "1.00 km"
        assert format_distance(500, "meters") == "0.50 km"

    def test_format_distance_feet(self):
        """Test distance formatting in feet."""
        assert format_distance(1609.34, "feet") == "1.00 mi"

    def test_format_duration(self):
        """Test duration formatting."""
        assert format_duration(3661) == "1h 1m 1s"
        assert format_duration(60) == "1m"
        assert format_duration(0) == "0s"

    def test_format_pace(self):
        # 10 km in 50 minutes
        assert format_pace(10000 / 3000) == "5:00 /km"
        assert format_pace(0) == "0:00 /km"

    def test_format_elevation(self):
        """Test elevation formatting."""
        assert format_elevation(100, "meters") == "100 m"
        assert format_elevation(100, "feet") == "328 ft"

    def test_format_local_datetime(self):
        assert format_local_datetime(datetime(2025, 10, 29, 12, 13)) == "Oct 29, 2025, 12:13 PM"
        assert format_local_datetime(datetime(2025, 1, 5, 0, 7)) == "Jan 5, 2025, 12:07 AM"


class TestActivityMessage:
    """Test the new-activity notification text."""

    def test_run(self):
        message = format_activity_message(DetailedActivity(**DETAILED_ACTIVITY))

        assert message.splitlines() == [
            "🏃 New Strava Workout!",
            "",
            "**Morning Run**",
            "Type: Run",
            "Date: Oct 29, 2025, 12:13 PM",
            "Distance: 10.00 km",
            "Duration: 50m",
            "Pace: 5:00 /km",
            "Elevation: 120 m",
            "Avg HR: 151 bpm",
            "🏆 2 PRs!",
        ]

    def test_ride_with_power(self):
        message = format_activity_message(DetailedActivity(**RIDE_ACTIVITY))

        assert "Avg Power: 175W" in message
        assert "Energy: 789kJ" in message
        assert "PR" not in message

    def test_sparse_activity(self):
        message = format_activity_message(DetailedActivity(id=1))

        assert "Distance: N/A" in message
        assert "Duration: N/A" in message
        assert "Avg HR: N/A" in message
