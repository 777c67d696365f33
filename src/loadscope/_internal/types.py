"""Shared type aliases for loadscope."""

from __future__ import annotations

# HTTP headers dictionary.
Headers = dict[str, str]

# Think time range (min_seconds, max_seconds).
ThinkTime = tuple[float, float]

# One point of the active-user timeline (elapsed_seconds, active_users).
TimelinePoint = tuple[float, int]
