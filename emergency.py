"""Emergency "call a doctor" flow: rank doctors near the caller, log the call, alert Slack."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from errors import CollaboratorFailure
from geo import NEAREST_DOCTOR_LIMIT, Coordinate, rank_nearest_doctors
from models import new_call_log, public_record
from notifications import format_emergency_message

logger = logging.getLogger(__name__)

DIRECT_MODE = "direct"


@dataclass
class EmergencyCallResult:
    doctors: List[Dict[str, Any]]
    warnings: List[str] = field(default_factory=list)
    notified: bool = False

    def to_dict(self):
        return {"doctors": self.doctors, "warnings": self.warnings}


def handle_emergency_call(store, notifier, lat, lng, name=None, phone=None, mode=None,
                          now=None, limit: int = NEAREST_DOCTOR_LIMIT) -> EmergencyCallResult:
    """Return the nearest doctors to (lat, lng).

    Raises InvalidInput for a bad caller location and NoDoctorsAvailable
    when no doctor has a usable location. Failing to log the call or to
    send the Slack alert only adds a warning to the result.
    """
    logger.info("Incoming emergency call lat=%r lng=%r mode=%r", lat, lng, mode)
    origin = Coordinate.parse(lat, lng)

    nearest = rank_nearest_doctors(store.list_doctors(), origin, limit=limit)
    nearest = [public_record(d) for d in nearest]
    logger.info("Nearest doctors: %s",
                ", ".join(f"{d.get('id')} ({d['distanceKm']:.2f} km)" for d in nearest))
    result = EmergencyCallResult(doctors=nearest)

    selected = nearest[0]
    try:
        if store.record_call(selected.get("id"), new_call_log(origin, name, phone, now=now)):
            logger.info("Saved call log for doctor %s", selected.get("id"))
        else:
            logger.warning("Doctor %s vanished before the call could be logged", selected.get("id"))
            result.warnings.append(f"call log not saved: doctor {selected.get('id')} not found")
    except CollaboratorFailure as exc:
        logger.warning("Failed to save call log for doctor %s: %s", selected.get("id"), exc)
        result.warnings.append(f"call log not saved: {exc}")

    if mode == DIRECT_MODE:
        logger.info("Direct call mode - skipping Slack alert")
    elif notifier is None:
        logger.info("Slack not configured - skipping Slack alert")
    else:
        try:
            notifier.notify(format_emergency_message(name, phone, origin, nearest))
            result.notified = True
        except CollaboratorFailure as exc:
            logger.warning("Failed to send Slack message: %s", exc)
            result.warnings.append(f"notification not sent: {exc}")

    return result
