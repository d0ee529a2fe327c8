"""Score functions mapping raw signals and baselines to 0-100.

Every scorer clamps its result to [0, 100]. Missing inputs fall back to a
neutral 50 (or simply don't contribute, for the multi-component scorers).
"""

from dataclasses import dataclass
from datetime import datetime

from axle_server.core.numbers import is_number
from axle_server.services.statistics import MetricBaselines, clamp, safe_div

# Baselines need this many samples before they adjust a score
MIN_BASELINE_SAMPLES = 5

NEUTRAL = 50.0


@dataclass(frozen=True)
class ZoneMinutes:
    """Training minutes per heart-rate zone over a window."""

    zone1: float = 0.0
    zone2: float = 0.0
    zone3: float = 0.0
    zone4: float = 0.0
    zone5: float = 0.0

    @property
    def total(self) -> float:
        return self.zone1 + self.zone2 + self.zone3 + self.zone4 + self.zone5

    def to_dict(self) -> dict[str, float]:
        return {
            "zone1": self.zone1,
            "zone2": self.zone2,
            "zone3": self.zone3,
            "zone4": self.zone4,
            "zone5": self.zone5,
        }


def score_sleep(sleep_score: float | None, baselines: MetricBaselines) -> float:
    """Score sleep quality.

    Args:
        sleep_score: Provider sleep score (0-100)
        baselines: User's rolling baselines

    Returns:
        0-100; 50 when there is no data
    """
    if not is_number(sleep_score):
        return NEUTRAL

    score = clamp(sleep_score, 0, 100)
    base = baselines.sleep_score
    if base.count >= MIN_BASELINE_SAMPLES:
        score += (sleep_score - base.mean) / max(base.std, 5) * 5

    return clamp(score, 0, 100)


def score_activity(steps: float | None, baselines: MetricBaselines) -> float:
    """Score daily activity: 10k steps maps to 80, 12.5k+ to 100.

    Args:
        steps: Daily step count
        baselines: User's rolling baselines

    Returns:
        0-100; 50 when there is no data
    """
    if not is_number(steps):
        return NEUTRAL

    score = min(100.0, steps / 10000 * 80)
    base = baselines.steps
    if base.count >= MIN_BASELINE_SAMPLES:
        score += (steps - base.mean) / max(base.std, 1000) * 5

    return clamp(score, 0, 100)


def score_stress_recovery(
    hrv: float | None,
    resting_hr: float | None,
    stress: float | None,
    baselines: MetricBaselines,
) -> float:
    """Average of the available HRV, resting HR and stress components.

    HRV and resting HR are z-scored against the baseline once it has enough
    samples, otherwise they use fixed population ranges (HRV 0-50 ms, RHR
    50-80 bpm). Stress is on a 0-10 scale.

    Returns:
        0-100; 50 if no component is present
    """
    components: list[float] = []

    if is_number(hrv):
        base = baselines.hrv
        if base.count >= MIN_BASELINE_SAMPLES:
            z = (hrv - base.mean) / max(base.std, 1)
            hrv_score = 50 + z * 15
        else:
            hrv_score = min(100.0, hrv / 50 * 100)
        components.append(clamp(hrv_score, 0, 100))

    if is_number(resting_hr):
        base = baselines.resting_hr
        if base.count >= MIN_BASELINE_SAMPLES:
            z = (resting_hr - base.mean) / max(base.std, 2)
            hr_score = 50 - z * 15
        else:
            hr_score = max(0.0, 100 - ((resting_hr - 50) / 30) * 50)
        components.append(clamp(hr_score, 0, 100))

    if is_number(stress):
        components.append(clamp(max(0.0, 100 - stress * 10), 0, 100))

    if not components:
        return NEUTRAL
    return clamp(sum(components) / len(components), 0, 100)


def score_vitality(
    sleep_score: float | None,
    steps: float | None,
    hrv: float | None,
    resting_hr: float | None,
    stress: float | None,
    baselines: MetricBaselines,
) -> int:
    """Weighted composite: sleep 40%, activity 30%, stress/recovery 30%."""
    sleep = score_sleep(sleep_score, baselines)
    activity = score_activity(steps, baselines)
    recovery = score_stress_recovery(hrv, resting_hr, stress, baselines)
    return round(clamp(sleep * 0.4 + activity * 0.3 + recovery * 0.3, 0, 100))


def score_performance_potential(
    hrv: float | None,
    sleep_score: float | None,
    strain_48h: float | None,
    rpe_24h: float | None,
) -> float:
    """Readiness to train hard today.

    Starts at 100; each signal group applies one penalty or bonus
    independently of the others.
    """
    score = 100.0

    if is_number(hrv):
        if hrv < 20:
            score -= 30
        elif hrv < 30:
            score -= 15
        elif hrv > 50:
            score += 5

    if is_number(sleep_score):
        if sleep_score < 60:
            score -= 25
        elif sleep_score < 75:
            score -= 10
        elif sleep_score >= 85:
            score += 5

    if is_number(strain_48h):
        if strain_48h > 16:
            score -= 20
        elif strain_48h > 12:
            score -= 10
        elif strain_48h < 6:
            score += 5

    if is_number(rpe_24h):
        if rpe_24h >= 9:
            score -= 25
        elif rpe_24h >= 7:
            score -= 15
        elif rpe_24h >= 5:
            score -= 5

    return clamp(score, 0, 100)


def score_circadian(
    sleep_midpoint_sd: float | None,
    wake_time: str | None,
    sunrise: str | None,
    steps_first_2h: float | None,
    uv_max: float | None,
) -> float:
    """Circadian alignment.

    A neutral base of 50 plus up to four optional components, averaged over
    the number that contributed (base included).

    Args:
        sleep_midpoint_sd: Std dev of sleep midpoint across nights (hours)
        wake_time: Wake time as ``HH:MM``
        sunrise: ISO datetime of sunrise at the user's location
        steps_first_2h: Steps in the first two hours after waking
        uv_max: Daily max UV index
    """
    total = NEUTRAL
    count = 1

    if is_number(sleep_midpoint_sd):
        total += clamp(max(0.0, 100 - sleep_midpoint_sd * 60), 0, 100)
        count += 1

    if wake_time and sunrise:
        wake_hour = _parse_hour(wake_time)
        sunrise_hour = _parse_hour(sunrise)
        if wake_hour is not None and sunrise_hour is not None:
            diff = abs(wake_hour - sunrise_hour)
            if diff <= 1:
                alignment = 100.0
            elif diff <= 2:
                alignment = 80.0
            elif diff <= 3:
                alignment = 60.0
            else:
                alignment = max(20.0, 60 - diff * 10)
            total += alignment
            count += 1

    if is_number(steps_first_2h):
        total += min(100.0, steps_first_2h / 500 * 80)
        count += 1

    if is_number(uv_max):
        if 3 <= uv_max <= 7:
            uv_score = 80.0
        elif uv_max > 7:
            uv_score = max(30.0, 80 - (uv_max - 7) * 10)
        else:
            uv_score = max(20.0, uv_max * 25)
        total += uv_score
        count += 1

    return clamp(total / count, 0, 100)


def score_energy_balance(zone_minutes: ZoneMinutes | None) -> float:
    """Score the easy/hard split of training volume (ideal roughly 80/20).

    Easy is zones 1-2 (ideal 70-80%), hard is zones 4-5 (ideal 10-20%).
    Outside the tiered bands the score is reduced in proportion to the
    distance from the band centre.
    """
    if zone_minutes is None:
        return NEUTRAL
    total = zone_minutes.total
    if total == 0:
        return NEUTRAL

    easy_pct = safe_div(zone_minutes.zone1 + zone_minutes.zone2, total) * 100
    hard_pct = safe_div(zone_minutes.zone4 + zone_minutes.zone5, total) * 100

    score = NEUTRAL

    if 70 <= easy_pct <= 80:
        score += 25
    elif 60 <= easy_pct <= 85:
        score += 15
    elif 50 <= easy_pct <= 90:
        score += 5
    else:
        score -= abs(easy_pct - 75) * 0.5

    if 10 <= hard_pct <= 20:
        score += 25
    elif 5 <= hard_pct <= 25:
        score += 15
    elif 0 <= hard_pct <= 30:
        score += 5
    else:
        score -= abs(hard_pct - 15) * 0.5

    return clamp(score, 0, 100)


def _parse_hour(value: str) -> int | None:
    """Hour from ``HH:MM[:SS]`` or an ISO datetime; None if unparseable."""
    text = value.strip()
    try:
        if "T" in text or len(text) > 8:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).hour
        hour = int(text.split(":")[0])
    except ValueError:
        return None
    if 0 <= hour <= 23:
        return hour
    return None
