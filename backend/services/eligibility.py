"""
Donor eligibility rules.

Both checks are pure: they read the donor record or the vitals taken at the
chair and never write anything.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel

import config
from models import Donor, DonorView, CollectionVitals
from services import as_utc


class EligibilityDecision(BaseModel):
    eligible: bool
    reason: Optional[str] = None


def eligible_to_donate_since(donor: Donor, interval_days: Optional[int] = None) -> Optional[datetime]:
    """Earliest date the donor may give blood again, None if never restricted."""
    if interval_days is None:
        interval_days = config.MIN_DONATION_INTERVAL_DAYS

    candidates = []
    if donor.last_donation_date:
        candidates.append(as_utc(donor.last_donation_date) + timedelta(days=interval_days))
    if donor.deferral_end_date:
        candidates.append(as_utc(donor.deferral_end_date))
    return max(candidates) if candidates else None


def can_schedule(donor: Donor, now: datetime) -> EligibilityDecision:
    if donor.permanently_deferred:
        return EligibilityDecision(eligible=False, reason=f"Donor permanently deferred: {donor.deferral_reason}")

    since = eligible_to_donate_since(donor)
    if since is None or since <= as_utc(now):
        return EligibilityDecision(eligible=True)
    return EligibilityDecision(eligible=False, reason=f"Donor not eligible to donate until {since.date().isoformat()}")


def vitals_failures(vitals: CollectionVitals) -> List[str]:
    failures = []
    if vitals.hemoglobin < config.MIN_HEMOGLOBIN_G_DL:
        failures.append(f"Hemoglobin {vitals.hemoglobin} g/dL below {config.MIN_HEMOGLOBIN_G_DL}")
    if vitals.weight < config.MIN_WEIGHT_KG:
        failures.append(f"Weight {vitals.weight} kg below {config.MIN_WEIGHT_KG}")
    if vitals.temperature > config.MAX_TEMPERATURE_C:
        failures.append(f"Temperature {vitals.temperature} C above {config.MAX_TEMPERATURE_C}")
    if not config.MIN_PULSE_BPM <= vitals.pulse <= config.MAX_PULSE_BPM:
        failures.append(f"Pulse {vitals.pulse} bpm outside {config.MIN_PULSE_BPM}-{config.MAX_PULSE_BPM}")

    risk_checks = {
        "recent_illness": "Recent illness",
        "recent_vaccination": "Recent vaccination",
        "recent_surgery": "Recent surgery",
        "recent_tattoo": "Recent tattoo",
        "pregnant": "Pregnancy",
        "high_risk_behavior": "High-risk behavior",
    }
    for field, label in risk_checks.items():
        if getattr(vitals, field):
            failures.append(f"{label} reported")
    return failures


def meets_vitals(vitals: CollectionVitals) -> bool:
    return not vitals_failures(vitals)


def donor_view(donor: Donor, now: datetime) -> DonorView:
    decision = can_schedule(donor, now)
    return DonorView(
        **donor.model_dump(),
        eligible_to_donate_since=eligible_to_donate_since(donor),
        eligible=decision.eligible,
        ineligible_reason=decision.reason,
    )
