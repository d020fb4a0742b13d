"""Level and rank computation.

Levels follow a square-root curve: level n begins at 100 * (n - 1)^2 XP.
"""

from __future__ import annotations

import math

XP_PER_LEVEL_UNIT = 100

RANK_BOUNDARIES: list[tuple[int, str]] = [
    (5, "Beginner"),
    (10, "Intermediate"),
    (15, "Advanced"),
    (20, "Expert"),
]
TOP_RANK = "Master"


def calculate_level(experience_points: int) -> int:
    """Level for a given XP total. Level 1 at 0 XP."""
    xp = max(0, experience_points)
    # floor(sqrt(floor(x))) == floor(sqrt(x)), so integer math is exact here
    return math.isqrt(xp // XP_PER_LEVEL_UNIT) + 1


def xp_threshold_for_level(level: int) -> int:
    """XP at which `level` begins."""
    return XP_PER_LEVEL_UNIT * (level - 1) * (level - 1)


def rank_for_level(level: int) -> str:
    """Rank name for a level. Boundaries belong to the higher rank (5 is Intermediate)."""
    for upper, title in RANK_BOUNDARIES:
        if level < upper:
            return title
    return TOP_RANK


def level_progress(experience_points: int, level: int) -> float:
    """Fraction of the way from `level` to `level + 1`, clamped to [0, 1]."""
    current = xp_threshold_for_level(level)
    span = xp_threshold_for_level(level + 1) - current
    if span <= 0:
        return 0.0
    return min(1.0, max(0.0, (experience_points - current) / span))


def points_to_next_level(experience_points: int, level: int) -> int:
    return max(0, xp_threshold_for_level(level + 1) - experience_points)


def compute_level(total_xp: int) -> dict:
    """Compute full level info from total XP."""
    level = calculate_level(total_xp)
    current = xp_threshold_for_level(level)
    return {
        "level": level,
        "rank": rank_for_level(level),
        "xp_into_level": max(0, total_xp - current),
        "xp_for_level": xp_threshold_for_level(level + 1) - current,
        "points_to_next_level": points_to_next_level(total_xp, level),
        "progress": level_progress(total_xp, level),
        "next_level": level + 1,
        "next_rank": rank_for_level(level + 1),
    }


def level_table(up_to: int = 20) -> list[dict]:
    """Level definitions 1..up_to with their XP thresholds."""
    return [
        {"level": n, "rank": rank_for_level(n), "xp_required": xp_threshold_for_level(n)}
        for n in range(1, up_to + 1)
    ]
