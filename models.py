# models.py
"""Record shapes for doctors, patients, appointments and call logs.

Records are plain dicts (they round-trip through JSON and MongoDB
unchanged); the helpers here build and clean them.
"""
from datetime import datetime, timezone

from werkzeug.security import generate_password_hash

from errors import InvalidInput
from geo import Coordinate

APPOINTMENT_STATUSES = ('pending', 'confirmed', 'cancelled')
DEFAULT_LOCATION = {'lat': -20.2, 'lng': 57.5}

SECRET_FIELDS = ('passwordHash', 'password')


def utcnow_iso():
    return datetime.now(timezone.utc).isoformat()


def public_record(record):
    if record is None:
        return None
    return {k: v for k, v in record.items() if k not in SECRET_FIELDS}


def _text(payload, key):
    value = payload.get(key)
    if value is None:
        return ''
    return str(value).strip()


def _require(payload, *keys):
    missing = [k for k in keys if not _text(payload, k)]
    if missing:
        raise InvalidInput(f"{', '.join(missing)} required")


def new_doctor(payload):
    """Build a doctor record (without id) from a registration payload."""
    _require(payload, 'name', 'email', 'password')
    location = payload.get('location')
    if isinstance(location, dict):
        location = Coordinate.parse(location.get('lat'), location.get('lng')).to_dict()
    else:
        location = dict(DEFAULT_LOCATION)
    experience = payload.get('experience')
    try:
        experience = int(experience) if experience not in (None, '') else 0
    except (TypeError, ValueError, OverflowError):
        raise InvalidInput('experience must be a number') from None
    return {
        'name': _text(payload, 'name'),
        'email': _text(payload, 'email').lower(),
        'phone': _text(payload, 'phone'),
        'licenseNumber': _text(payload, 'licenseNumber'),
        'specialty': _text(payload, 'specialty'),
        'experience': experience,
        'clinicAddress': _text(payload, 'clinicAddress'),
        'availableHours': _text(payload, 'availableHours'),
        'location': location,
        'passwordHash': generate_password_hash(str(payload['password'])),
        'callLogs': [],
    }


def new_patient(payload):
    _require(payload, 'name', 'email', 'password')
    favorites = payload.get('favoriteDoctorIds')
    return {
        'name': _text(payload, 'name'),
        'email': _text(payload, 'email').lower(),
        'phone': _text(payload, 'phone'),
        'address': _text(payload, 'address'),
        'passwordHash': generate_password_hash(str(payload['password'])),
        'favoriteDoctorIds': list(favorites) if isinstance(favorites, list) else [],
    }


def new_appointment(payload):
    _require(payload, 'doctorId', 'patientId', 'date', 'time')
    status = _text(payload, 'status') or 'pending'
    if status not in APPOINTMENT_STATUSES:
        raise InvalidInput(f"status must be one of {', '.join(APPOINTMENT_STATUSES)}")
    appt = {
        'doctorId': payload['doctorId'],
        'patientId': payload['patientId'],
        'date': _text(payload, 'date'),
        'time': _text(payload, 'time'),
        'status': status,
        'createdAt': utcnow_iso(),
    }
    if _text(payload, 'report'):
        appt['report'] = _text(payload, 'report')
    return appt


def new_call_log(origin, name=None, phone=None, now=None):
    """Call log entry; empty caller fields are left out."""
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    log = {'timestamp': stamp}
    if name is not None and str(name).strip():
        log['patientName'] = str(name).strip()
    if phone is not None and str(phone).strip():
        log['patientPhone'] = str(phone).strip()
    log['location'] = origin.to_dict()
    return log
