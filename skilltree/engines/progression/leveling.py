"""
XP/Leveling Calculator - pure mapping from cumulative XP to a level.

Level is always derived from total XP, never stored independently of it.
"""

XP_PER_LEVEL = 500


def level_for_xp(xp: int) -> int:
    """Level for a cumulative XP total: floor(xp / 500) + 1."""
    if xp < 0:
        raise ValueError(f"XP cannot be negative: {xp}")
    return xp // XP_PER_LEVEL + 1


def xp_to_next_level(xp: int) -> int:
    """XP still needed to reach the next level."""
    return level_for_xp(xp) * XP_PER_LEVEL - xp
