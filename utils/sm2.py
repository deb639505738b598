GRADE_AGAIN = 0
GRADE_HARD = 1
GRADE_GOOD = 2
GRADE_EASY = 3

MIN_EASE = 1.3
MAX_EASE = 3.0
DEFAULT_EASE = 2.5


def normalize_grade(grade) -> int:
    """Clamp any numeric grade onto again/hard/good/easy (0-3)."""
    try:
        value = int(grade)
    except (TypeError, ValueError):
        return GRADE_AGAIN
    if value <= GRADE_AGAIN:
        return GRADE_AGAIN
    if value >= GRADE_EASY:
        return GRADE_EASY
    return value


def map_grade_to_quality(grade: int) -> int:
    """Map grade to SM-2 quality score (0-5)."""
    mapping = {
        GRADE_AGAIN: 0,
        GRADE_HARD: 3,
        GRADE_GOOD: 4,
        GRADE_EASY: 5,
    }
    return mapping.get(normalize_grade(grade), 0)


def update_ease(prev_ease: float, quality: int) -> float:
    """SM-2 ease update, clamped to [1.3, 3.0]."""
    next_ease = prev_ease + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    return max(MIN_EASE, min(MAX_EASE, next_ease))


def good_interval_days(prev_interval_days: int, reps_after: int, ease: float) -> int:
    if reps_after <= 1:
        return 1
    if reps_after == 2:
        return 6
    return max(1, round(max(1, prev_interval_days) * ease))


def review_interval_days(prev_interval_days: int, reps_after: int, grade: int, prev_ease: float) -> int:
    """Interval for a card graduating from review; never shorter for a better grade."""
    good = good_interval_days(prev_interval_days, reps_after, update_ease(prev_ease, map_grade_to_quality(GRADE_GOOD)))
    if grade == GRADE_HARD:
        return max(1, min(good, round(max(1, prev_interval_days) * 1.2)))
    if grade == GRADE_EASY:
        return max(good + 1, round(good * 1.3))
    return good
