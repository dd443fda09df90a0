"""Persistence for doctors, patients and appointments.

`DoctorStore` is the single capability the app talks to. Two
implementations exist: a JSON document on disk and a MongoDB database.
`build_store()` picks one at startup.
"""

from __future__ import annotations

import contextlib
import functools
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import PyMongoError
from werkzeug.security import generate_password_hash

from errors import CollaboratorFailure

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

UPDATABLE_APPOINTMENT_FIELDS = ('report', 'status')


def same_id(a, b) -> bool:
    return a == b or (a is not None and b is not None and str(a) == str(b))


def coerce_id(value):
    """Numeric strings become ints so JSON ids compare naturally."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def email_key(email) -> str:
    """Lookup form of an email; anything that is not a string matches nothing."""
    if not isinstance(email, str):
        return ''
    return email.strip().lower()


class DoctorStore(ABC):
    """Read/write access to doctors, patients and appointments."""

    # doctors
    @abstractmethod
    def list_doctors(self) -> List[Record]: ...

    @abstractmethod
    def get_doctor(self, doctor_id) -> Optional[Record]: ...

    @abstractmethod
    def find_doctor_by_email(self, email: str) -> Optional[Record]: ...

    @abstractmethod
    def add_doctor(self, doctor: Record) -> Record: ...

    @abstractmethod
    def record_call(self, doctor_id, log: Record) -> bool:
        """Append a call log to a doctor. False when the doctor is unknown."""

    @abstractmethod
    def update_call_report(self, doctor_id, log_index: int, report: str) -> Optional[Record]: ...

    # patients
    @abstractmethod
    def list_patients(self) -> List[Record]: ...

    @abstractmethod
    def get_patient(self, patient_id) -> Optional[Record]: ...

    @abstractmethod
    def find_patient_by_email(self, email: str) -> Optional[Record]: ...

    @abstractmethod
    def add_patient(self, patient: Record) -> Record: ...

    @abstractmethod
    def update_patient_favorites(self, patient_id, favorite_doctor_ids: list) -> Optional[Record]: ...

    # appointments
    @abstractmethod
    def list_appointments(self) -> List[Record]: ...

    @abstractmethod
    def get_appointment(self, appointment_id) -> Optional[Record]: ...

    @abstractmethod
    def add_appointment(self, appointment: Record) -> Record: ...

    @abstractmethod
    def update_appointment(self, appointment_id, **fields) -> Optional[Record]: ...

    def all_data(self) -> Dict[str, List[Record]]:
        return {
            'doctors': self.list_doctors(),
            'patients': self.list_patients(),
            'appointments': self.list_appointments(),
        }


def _appointment_changes(fields):
    return {k: v for k, v in fields.items() if k in UPDATABLE_APPOINTMENT_FIELDS and v is not None}


# -----------------------
# JSON file store
# -----------------------

def default_data() -> Dict[str, List[Record]]:
    """Sample Mauritius doctors used when the data file does not exist yet."""
    def doctor(doc_id, name, phone, license_no, specialty, experience, address, hours, lat, lng, password):
        return {
            'id': doc_id,
            'name': name,
            'email': f"{name.split()[-1].lower()}@example.com",
            'phone': phone,
            'licenseNumber': license_no,
            'specialty': specialty,
            'experience': experience,
            'clinicAddress': address,
            'availableHours': hours,
            'location': {'lat': lat, 'lng': lng},
            'passwordHash': generate_password_hash(password),
            'callLogs': [],
        }

    return {
        'doctors': [
            doctor(1, 'Dr. Mahadoor', '+23057447700', 'LIC12345', 'Cardiology', 10,
                   'Bambous Village, Mauritius', '9 AM - 5 PM', -20.256, 57.406, 'password123'),
            doctor(2, 'Dr. Ramdin', '+23057447701', 'LIC54321', 'General Medicine', 5,
                   'Rose Hill, Mauritius', '8 AM - 4 PM', -20.232, 57.471, 'password123'),
            doctor(3, 'Dr. Appadoo', '+23057447702', 'LIC67890', 'Pediatrics', 7,
                   'Curepipe, Mauritius', '10 AM - 6 PM', -20.316, 57.516, 'password123'),
            doctor(5, 'Dr. Jeebun', '+23057447705', 'LIC24681', 'General Medicine', 3,
                   'Mapou, Mauritius', '9 AM - 3 PM', -20.0575, 57.6111, 'password123'),
        ],
        'patients': [
            {
                'id': 1,
                'name': 'John Smith',
                'email': 'john@example.com',
                'phone': '+230 111 2222',
                'address': 'Port Louis, Mauritius',
                'passwordHash': generate_password_hash('password123'),
                'favoriteDoctorIds': [],
            },
        ],
        'appointments': [],
    }


def _next_id(records):
    numeric_ids = [r['id'] for r in records if isinstance(r.get('id'), int) and not isinstance(r.get('id'), bool)]
    return (max(numeric_ids) + 1) if numeric_ids else 1


class JsonFileStore(DoctorStore):
    """All data in one JSON document: {doctors, patients, appointments}."""

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _read(self):
        if not self.path.exists():
            data = default_data()
            self._write(data)
            logger.info('Created %s with sample data', self.path)
            return data
        try:
            with self.path.open(encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CollaboratorFailure(f'could not read data file {self.path}: {e}') from e
        if not isinstance(data, dict):
            raise CollaboratorFailure(f'data file {self.path} does not hold a JSON object')
        for key in ('doctors', 'patients', 'appointments'):
            if not isinstance(data.get(key), list):
                data[key] = []
        return data

    def _write(self, data):
        tmp = self.path.with_name(self.path.name + '.tmp')
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open('w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise CollaboratorFailure(f'could not write data file {self.path}: {e}') from e

    def _find(self, collection, record_id):
        with self._lock:
            return next((r for r in self._read()[collection] if same_id(r.get('id'), record_id)), None)

    def _insert(self, collection, record):
        with self._lock:
            data = self._read()
            new = dict(record, id=_next_id(data[collection]))
            data[collection].append(new)
            self._write(data)
            return new

    def _find_by_email(self, collection, email):
        email_l = email_key(email)
        if not email_l:
            return None
        with self._lock:
            return next((r for r in self._read()[collection] if email_key(r.get('email')) == email_l), None)

    def list_doctors(self):
        with self._lock:
            return self._read()['doctors']

    def get_doctor(self, doctor_id):
        return self._find('doctors', doctor_id)

    def find_doctor_by_email(self, email):
        return self._find_by_email('doctors', email)

    def add_doctor(self, doctor):
        return self._insert('doctors', doctor)

    def record_call(self, doctor_id, log):
        with self._lock:
            data = self._read()
            doc = next((d for d in data['doctors'] if same_id(d.get('id'), doctor_id)), None)
            if doc is None:
                return False
            if not isinstance(doc.get('callLogs'), list):
                doc['callLogs'] = []
            doc['callLogs'].append(log)
            self._write(data)
            return True

    def update_call_report(self, doctor_id, log_index, report):
        with self._lock:
            data = self._read()
            doc = next((d for d in data['doctors'] if same_id(d.get('id'), doctor_id)), None)
            logs = doc.get('callLogs') if doc else None
            if not isinstance(logs, list) or not 0 <= log_index < len(logs):
                return None
            logs[log_index]['report'] = report
            self._write(data)
            return doc

    def list_patients(self):
        with self._lock:
            return self._read()['patients']

    def get_patient(self, patient_id):
        return self._find('patients', patient_id)

    def find_patient_by_email(self, email):
        return self._find_by_email('patients', email)

    def add_patient(self, patient):
        return self._insert('patients', patient)

    def update_patient_favorites(self, patient_id, favorite_doctor_ids):
        with self._lock:
            data = self._read()
            patient = next((p for p in data['patients'] if same_id(p.get('id'), patient_id)), None)
            if patient is None:
                return None
            patient['favoriteDoctorIds'] = [coerce_id(i) for i in favorite_doctor_ids]
            self._write(data)
            return patient

    def list_appointments(self):
        with self._lock:
            return self._read()['appointments']

    def get_appointment(self, appointment_id):
        return self._find('appointments', appointment_id)

    def add_appointment(self, appointment):
        appointment = dict(appointment,
                           doctorId=coerce_id(appointment.get('doctorId')),
                           patientId=coerce_id(appointment.get('patientId')))
        return self._insert('appointments', appointment)

    def update_appointment(self, appointment_id, **fields):
        with self._lock:
            data = self._read()
            appt = next((a for a in data['appointments'] if same_id(a.get('id'), appointment_id)), None)
            if appt is None:
                return None
            appt.update(_appointment_changes(fields))
            self._write(data)
            return appt


# -----------------------
# MongoDB store
# -----------------------

def _mongo_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PyMongoError as e:
            raise CollaboratorFailure(f'database error: {e}') from e
    return wrapper


def _object_id(value):
    if isinstance(value, ObjectId):
        return value
    if value is not None and ObjectId.is_valid(str(value)):
        return ObjectId(str(value))
    return None


def _from_mongo(doc):
    if doc is None:
        return None
    out = dict(doc)
    out['id'] = str(out.pop('_id'))
    return out


class MongoStore(DoctorStore):
    """Collections `doctors`, `patients` and `appointments`; `_id` is exposed as string `id`."""

    def __init__(self, db):
        self.doctors = db['doctors']
        self.patients = db['patients']
        self.appointments = db['appointments']

    def _get(self, collection, record_id):
        oid = _object_id(record_id)
        if oid is None:
            return None
        return collection.find_one({'_id': oid})

    @staticmethod
    def _find_by_email(collection, email):
        key = email_key(email)
        if not key:
            return None
        return _from_mongo(collection.find_one({'email': key}))

    @staticmethod
    def _insert(collection, record):
        doc = {k: v for k, v in record.items() if k not in ('id', '_id')}
        result = collection.insert_one(doc)
        doc['_id'] = result.inserted_id
        return _from_mongo(doc)

    @_mongo_errors
    def list_doctors(self):
        return [_from_mongo(d) for d in self.doctors.find()]

    @_mongo_errors
    def get_doctor(self, doctor_id):
        return _from_mongo(self._get(self.doctors, doctor_id))

    @_mongo_errors
    def find_doctor_by_email(self, email):
        return self._find_by_email(self.doctors, email)

    @_mongo_errors
    def add_doctor(self, doctor):
        return self._insert(self.doctors, doctor)

    @_mongo_errors
    def record_call(self, doctor_id, log):
        oid = _object_id(doctor_id)
        if oid is None:
            return False
        result = self.doctors.update_one({'_id': oid}, {'$push': {'callLogs': log}})
        return result.matched_count > 0

    @_mongo_errors
    def update_call_report(self, doctor_id, log_index, report):
        oid = _object_id(doctor_id)
        if oid is None or log_index < 0:
            return None
        # only the one entry is written; calls pushed meanwhile stay intact
        entry = f'callLogs.{log_index}'
        result = self.doctors.update_one({'_id': oid, entry: {'$exists': True}},
                                         {'$set': {f'{entry}.report': report}})
        if result.matched_count == 0:
            return None
        return _from_mongo(self.doctors.find_one({'_id': oid}))

    @_mongo_errors
    def list_patients(self):
        return [_from_mongo(p) for p in self.patients.find()]

    @_mongo_errors
    def get_patient(self, patient_id):
        return _from_mongo(self._get(self.patients, patient_id))

    @_mongo_errors
    def find_patient_by_email(self, email):
        return self._find_by_email(self.patients, email)

    @_mongo_errors
    def add_patient(self, patient):
        return self._insert(self.patients, patient)

    @_mongo_errors
    def update_patient_favorites(self, patient_id, favorite_doctor_ids):
        doc = self._get(self.patients, patient_id)
        if doc is None:
            return None
        favorites = [str(i) for i in favorite_doctor_ids]
        self.patients.update_one({'_id': doc['_id']}, {'$set': {'favoriteDoctorIds': favorites}})
        doc['favoriteDoctorIds'] = favorites
        return _from_mongo(doc)

    @_mongo_errors
    def list_appointments(self):
        return [_from_mongo(a) for a in self.appointments.find()]

    @_mongo_errors
    def get_appointment(self, appointment_id):
        return _from_mongo(self._get(self.appointments, appointment_id))

    @_mongo_errors
    def add_appointment(self, appointment):
        appointment = dict(appointment,
                           doctorId=str(appointment.get('doctorId')),
                           patientId=str(appointment.get('patientId')))
        return self._insert(self.appointments, appointment)

    @_mongo_errors
    def update_appointment(self, appointment_id, **fields):
        doc = self._get(self.appointments, appointment_id)
        if doc is None:
            return None
        changes = _appointment_changes(fields)
        if changes:
            self.appointments.update_one({'_id': doc['_id']}, {'$set': changes})
            doc.update(changes)
        return _from_mongo(doc)


def build_store(settings) -> DoctorStore:
    if settings.mongodb_uri:
        client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=settings.mongodb_timeout_ms)
        logger.info('Using MongoDB store (database %s)', settings.mongodb_db)
        return MongoStore(client[settings.mongodb_db])
    logger.info('Using JSON file store at %s', settings.data_file)
    return JsonFileStore(settings.data_file)
