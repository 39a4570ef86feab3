"""Formatting utilities for Strava data."""

from datetime import datetime
from typing import Literal

from .models import DetailedActivity


def format_duration(seconds: int) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "1h 23m 45s"
    """
    if seconds < 0:
        return "0s"

    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)


def format_distance(
    meters: float,
    unit: Literal["meters", "feet"] = "meters",
) -> str:
    """
    Format distance in meters to km or miles.

    Args:
        meters: Distance in meters
        unit: Measurement system preference

    Returns:
        Formatted string like "10.5 km" or "6.5 mi"
    """
    if unit == "feet":
        miles = meters / 1609.344
        return f"{miles:.2f} mi"
    else:
        km = meters / 1000
        return f"{km:.2f} km"


def format_elevation(
    meters: float,
    unit: Literal["meters", "feet"] = "meters",
) -> str:
    """Format elevation in meters to m or ft."""
    if unit == "feet":
        feet = meters * 3.28084
        return f"{feet:.0f} ft"
    else:
        return f"{meters:.0f} m"


def format_pace(
    meters_per_second: float,
    unit: Literal["meters", "feet"] = "meters",
) -> str:
    """
    Format pace (inverse of speed) to min/km or min/mi.

    Args:
        meters_per_second: Speed in meters per second
        unit: Measurement system preference

    Returns:
        Formatted string like "4:30 /km" or "7:15 /mi"
    """
    if meters_per_second == 0:
        return "0:00 /km" if unit == "meters" else "0:00 /mi"

    if unit == "feet":
        seconds_per_unit = 1609.344 / meters_per_second
        suffix = "/mi"
    else:
        seconds_per_unit = 1000 / meters_per_second
        suffix = "/km"
    minutes, seconds = divmod(round(seconds_per_unit), 60)
    return f"{minutes}:{seconds:02d} {suffix}"


def format_local_datetime(dt: datetime) -> str:
    """
    Format a local start time the way people read it.

    Strava's ``start_date_local`` already carries the athlete's wall-clock
    time, so no timezone conversion is applied.

    Returns:
        Formatted string like "Oct 29, 2025, 12:13 PM"
    """
    hour = dt.hour % 12 or 12
    return f"{dt:%b} {dt.day}, {dt.year}, {hour}:{dt:%M} {dt:%p}"


def format_activity_message(
    activity: DetailedActivity,
    unit: Literal["meters", "feet"] = "meters",
) -> str:
    """Build the notification text for a newly uploaded activity."""
    distance = format_distance(activity.distance, unit) if activity.distance else "N/A"
    duration = format_duration(activity.moving_time) if activity.moving_time else "N/A"
    pace = (
        format_pace(activity.distance / activity.moving_time, unit)
        if activity.distance and activity.moving_time
        else "N/A"
    )
    date = format_local_datetime(activity.start_date_local) if activity.start_date_local else "N/A"
    heart_rate = f"{activity.average_heartrate:.0f} bpm" if activity.average_heartrate else "N/A"

    lines = [
        "🏃 New Strava Workout!",
        "",
        f"**{activity.name or 'Untitled activity'}**",
        f"Type: {activity.sport_type or activity.type or 'Unknown'}",
        f"Date: {date}",
        f"Distance: {distance}",
        f"Duration: {duration}",
        f"Pace: {pace}",
        f"Elevation: {format_elevation(activity.total_elevation_gain or 0, unit)}",
        f"Avg HR: {heart_rate}",
    ]

    if activity.average_watts:
        lines.append(f"Avg Power: {activity.average_watts:.0f}W")
    if activity.kilojoules:
        lines.append(f"Energy: {activity.kilojoules:.0f}kJ")
    if activity.pr_count:
        lines.append(f"🏆 {activity.pr_count} PR{'s' if activity.pr_count > 1 else ''}!")

    return "\n".join(lines)
