"""Daily fatigue estimate from today's signals and recent workout feedback."""

from collections.abc import Sequence

from axle_server.core.numbers import is_number
from axle_server.models.workout import Workout
from axle_server.providers.base import HealthSnapshot
from axle_server.services.statistics import clamp, compute_rolling_baseline

# Feedback samples needed before HRV / resting HR are compared to them
MIN_FEEDBACK_SAMPLES = 3


def compute_fatigue(snapshot: HealthSnapshot, last_14_workouts: Sequence[Workout]) -> float:
    """Estimate fatigue in [0, 1]; 0.5 is neutral.

    HRV and resting HR are compared against the spread of values users
    logged with their workouts over the last two weeks. Sleep score and
    stress apply fixed adjustments.

    Args:
        snapshot: Today's wearable snapshot
        last_14_workouts: Workouts from the trailing 14 days

    Returns:
        Fatigue between 0 and 1
    """
    fatigue = 0.5

    hrv_samples = [w.feedback_hrv for w in last_14_workouts if w.feedback_hrv]
    rhr_samples = [w.feedback_resting_hr for w in last_14_workouts if w.feedback_resting_hr]

    if snapshot.hrv and len(hrv_samples) >= MIN_FEEDBACK_SAMPLES:
        base = compute_rolling_baseline(hrv_samples)
        if snapshot.hrv < base.mean - base.std:
            fatigue += 0.25

    if snapshot.resting_hr and len(rhr_samples) >= MIN_FEEDBACK_SAMPLES:
        base = compute_rolling_baseline(rhr_samples)
        if snapshot.resting_hr > base.mean + base.std:
            fatigue += 0.15

    sleep = snapshot.sleep_score
    if is_number(sleep):
        if sleep < 60:
            fatigue += 0.15
        elif sleep < 75:
            fatigue += 0.05
        elif sleep >= 85:
            fatigue -= 0.10

    stress = snapshot.stress
    if is_number(stress):
        if stress >= 7:
            fatigue += 0.20
        elif stress >= 4:
            fatigue += 0.10
        elif stress <= 3:
            fatigue -= 0.05

    return clamp(fatigue, 0.0, 1.0)
