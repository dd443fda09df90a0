# app.py
import hmac
import json
import logging
from urllib.parse import parse_qsl

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash

from config import configure_logging, load_settings
from emergency import handle_emergency_call
from errors import CollaboratorFailure, Conflict, InvalidInput, MyDoctorError, NotFound, Unauthorized
from models import APPOINTMENT_STATUSES, new_appointment, new_doctor, new_patient, public_record
from notifications import build_notifier, format_booking_message
from storage import build_store, same_id

logger = logging.getLogger(__name__)

settings = load_settings()
app = Flask(__name__)
CORS(app)
app.secret_key = settings.secret_key
app.config.update(
    STORE=build_store(settings),
    NOTIFIER=build_notifier(settings),
    ADMIN_TOKEN=settings.admin_token,
    ADMIN_USERNAME=settings.admin_username,
    ADMIN_PASSWORD_HASH=settings.admin_password_hash,
)


def _store():
    return current_app.config['STORE']


def _notifier():
    return current_app.config.get('NOTIFIER')


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _is_admin():
    token = request.headers.get('X-Admin-Token') or request.cookies.get('admin_token')
    expected = current_app.config.get('ADMIN_TOKEN')
    return bool(token and expected and hmac.compare_digest(str(token), str(expected)))


def _require_admin():
    if not _is_admin():
        raise Unauthorized('unauthorized')


def _check_password(record, password):
    if not record or not isinstance(password, str) or not password:
        return False
    return check_password_hash(record.get('passwordHash') or '', password)


def _notify(text):
    """Best-effort Slack message; failures are logged, never raised."""
    notifier = _notifier()
    if notifier is None:
        logger.info('Slack not configured - skipping notification')
        return False
    try:
        notifier.notify(text)
        return True
    except CollaboratorFailure as e:
        logger.warning('Failed to send Slack notification: %s', e)
        return False


# Errors
@app.errorhandler(MyDoctorError)
def handle_app_error(e):
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({'error': e.description}), e.code
    logger.exception('Unhandled error on %s %s', request.method, request.path)
    return jsonify({'error': 'internal server error'}), 500


# Routes
@app.route('/')
def index():
    return jsonify({
        'status': 'running',
        'service': 'mydoctor-mu',
        'endpoints': {
            'doctors': 'GET/POST/PATCH /api/doctors',
            'patients': 'GET/POST/PATCH /api/patients',
            'appointments': 'GET/POST/PATCH /api/appointments',
            'call_doctor': 'POST /api/call-doctor',
        },
    })


# -----------------------
# Doctors
# -----------------------

@app.route('/api/doctors', methods=['GET'])
def list_doctors():
    return jsonify([public_record(d) for d in _store().list_doctors()])


@app.route('/api/doctors', methods=['POST'])
def register_doctor():
    data = _json_body()
    doctor = new_doctor(data)
    if _store().find_doctor_by_email(doctor['email']):
        raise Conflict('email already registered')
    created = _store().add_doctor(doctor)
    logger.info('Registered doctor %s', created.get('id'))
    return jsonify(public_record(created)), 201


@app.route('/api/doctors/<doctor_id>', methods=['GET'])
def get_doctor(doctor_id):
    doctor = _store().get_doctor(doctor_id)
    if not doctor:
        raise NotFound('doctor not found')
    return jsonify(public_record(doctor))


# Attach a report to one of the doctor's call logs
@app.route('/api/doctors', methods=['PATCH'])
def update_call_report():
    data = _json_body()
    doctor_id = data.get('doctorId')
    log_index = data.get('logIndex')
    report = data.get('report')
    if doctor_id in (None, '') or isinstance(log_index, bool) or not isinstance(log_index, int):
        raise InvalidInput('doctorId and integer logIndex required')
    if not isinstance(report, str) or not report.strip():
        raise InvalidInput('report required')
    updated = _store().update_call_report(doctor_id, log_index, report.strip())
    if not updated:
        raise NotFound('doctor or call log not found')
    return jsonify(public_record(updated))


# -----------------------
# Login
# -----------------------

@app.route('/api/login/doctor', methods=['POST'])
def login_doctor():
    data = _json_body()
    doctor = _store().find_doctor_by_email(data.get('email'))
    if not _check_password(doctor, data.get('password')):
        raise Unauthorized('Invalid credentials')
    return jsonify(public_record(doctor))


@app.route('/api/login/patient', methods=['POST'])
def login_patient():
    data = _json_body()
    patient = _store().find_patient_by_email(data.get('email'))
    if not _check_password(patient, data.get('password')):
        raise Unauthorized('Invalid credentials')
    return jsonify(public_record(patient))


@app.route('/api/login/admin', methods=['POST'])
def login_admin():
    data = _json_body()
    password_hash = current_app.config.get('ADMIN_PASSWORD_HASH')
    username = current_app.config.get('ADMIN_USERNAME')
    password = data.get('password')
    if not password_hash or data.get('username') != username or not isinstance(password, str):
        raise Unauthorized('Invalid credentials')
    if not check_password_hash(password_hash, password):
        raise Unauthorized('Invalid credentials')
    return jsonify({'token': current_app.config['ADMIN_TOKEN']})


# -----------------------
# Patients
# -----------------------

@app.route('/api/patients', methods=['GET'])
def list_patients():
    return jsonify([public_record(p) for p in _store().list_patients()])


@app.route('/api/patients', methods=['POST'])
def register_patient():
    data = _json_body()
    patient = new_patient(data)
    if _store().find_patient_by_email(patient['email']):
        raise Conflict('email already registered')
    created = _store().add_patient(patient)
    return jsonify(public_record(created)), 201


@app.route('/api/patients', methods=['PATCH'])
def update_favorites():
    data = _json_body()
    patient_id = data.get('patientId')
    if patient_id in (None, ''):
        raise InvalidInput('Valid patientId required')
    favorites = data.get('favoriteDoctorIds')
    if isinstance(favorites, list):
        favorites = [f for f in favorites if isinstance(f, (str, int)) and not isinstance(f, bool)]
    else:
        favorites = []
    updated = _store().update_patient_favorites(patient_id, favorites)
    if not updated:
        raise NotFound('Patient not found')
    return jsonify(public_record(updated))


# -----------------------
# Appointments
# -----------------------

@app.route('/api/appointments', methods=['GET'])
def list_appointments():
    appts = _store().list_appointments()
    doctor_id = request.args.get('doctorId')
    patient_id = request.args.get('patientId')
    if doctor_id:
        appts = [a for a in appts if same_id(a.get('doctorId'), doctor_id)]
    if patient_id:
        appts = [a for a in appts if same_id(a.get('patientId'), patient_id)]
    return jsonify(appts)


@app.route('/api/appointments', methods=['POST'])
def book_appointment():
    data = _json_body()
    appt = new_appointment(data)
    doctor = _store().get_doctor(appt['doctorId'])
    if not doctor:
        raise NotFound('doctor not found')
    patient = _store().get_patient(appt['patientId'])
    if not patient:
        raise NotFound('patient not found')
    created = _store().add_appointment(appt)
    logger.info('Booked appointment %s (doctor %s, patient %s)',
                created.get('id'), created.get('doctorId'), created.get('patientId'))
    # a failed notification never fails the booking
    _notify(format_booking_message(created, doctor, patient))
    return jsonify(created), 201


@app.route('/api/appointments', methods=['PATCH'])
def update_appointment():
    data = _json_body()
    appointment_id = data.get('appointmentId')
    if appointment_id in (None, ''):
        raise InvalidInput('appointmentId required')
    changes = {}
    report = data.get('report')
    if report is not None:
        if not isinstance(report, str) or not report.strip():
            raise InvalidInput('report must be a non-empty string')
        changes['report'] = report.strip()
    status = data.get('status')
    if status is not None:
        if status not in APPOINTMENT_STATUSES:
            raise InvalidInput(f"status must be one of {', '.join(APPOINTMENT_STATUSES)}")
        changes['status'] = status
    if not changes:
        raise InvalidInput('report or status required')
    updated = _store().update_appointment(appointment_id, **changes)
    if not updated:
        raise NotFound('appointment not found')
    return jsonify(updated)


@app.route('/api/appointments/<appt_id>/cancel', methods=['POST'])
def cancel_appointment(appt_id):
    """Mark an appointment as cancelled. The body must name the owning `patientId`,
    or a valid admin token must be sent in `X-Admin-Token` header or `admin_token` cookie.
    """
    data = _json_body()
    target = _store().get_appointment(appt_id)
    if not target:
        raise NotFound('appointment not found')

    requester = data.get('patientId')
    owner_ok = requester not in (None, '') and same_id(target.get('patientId'), requester)
    if not (owner_ok or _is_admin()):
        raise Unauthorized('unauthorized')

    updated = _store().update_appointment(target['id'], status='cancelled')
    return jsonify({'ok': True, 'appointmentId': updated.get('id'), 'status': updated.get('status')})


# -----------------------
# Emergency call
# -----------------------

@app.route('/api/call-doctor', methods=['POST'])
def call_doctor():
    data = _json_body()
    result = handle_emergency_call(
        _store(),
        _notifier(),
        data.get('lat'),
        data.get('lng'),
        name=data.get('name'),
        phone=data.get('phone'),
        mode=data.get('mode'),
    )
    return jsonify(result.to_dict())


# -----------------------
# Slack events
# -----------------------

def _parse_slack_body():
    content_type = request.headers.get('Content-Type', '')
    raw = request.get_data(as_text=True)
    try:
        if 'application/json' in content_type:
            return json.loads(raw) if raw else {}
        # interactive components and slash commands arrive urlencoded
        if 'application/x-www-form-urlencoded' in content_type:
            params = dict(parse_qsl(raw, keep_blank_values=True))
            if params.get('payload'):
                return json.loads(params['payload'])
            return params
    except ValueError:
        raise InvalidInput('malformed Slack payload') from None
    try:
        return json.loads(raw) if raw else {}
    except ValueError:
        return {'raw': raw}


@app.route('/api/slack/webhook', methods=['GET'])
def slack_webhook_status():
    return jsonify({'ok': True})


@app.route('/api/slack/webhook', methods=['POST'])
def slack_webhook():
    body = _parse_slack_body()
    if not isinstance(body, dict):
        return jsonify({'ok': True})

    if body.get('type') == 'url_verification' and body.get('challenge'):
        return jsonify({'challenge': str(body['challenge'])})

    event = body.get('event')
    if isinstance(event, dict) and event.get('type') == 'message' and not event.get('bot_id'):
        channel = event.get('channel')
        logger.info('Received Slack message from %s in %s', event.get('user'), channel)
        notifier = _notifier()
        if notifier is not None and channel:
            try:
                notifier.post_message(channel, f"Received your message: {event.get('text')}")
            except CollaboratorFailure as e:
                logger.warning('Failed to post Slack reply: %s', e)

    return jsonify({'ok': True})


# -----------------------
# Admin
# -----------------------

@app.route('/api/admin/data', methods=['GET'])
def admin_data():
    _require_admin()
    data = _store().all_data()
    return jsonify({key: [public_record(r) for r in records] for key, records in data.items()})


def main():
    configure_logging(settings.log_level)
    if settings.mongodb_uri:
        logger.info('MONGODB_URI set; doctors are read from MongoDB database %s', settings.mongodb_db)
    elif not settings.data_file.exists():
        logger.info('%s not found; it will be created with sample doctors on first use', settings.data_file)
    if app.config.get('NOTIFIER') is None:
        logger.warning('SLACK_BOT_TOKEN/SLACK_CHANNEL_ID not set; Slack notifications are disabled')
    app.run(host=settings.host, port=settings.port, debug=settings.debug)


if __name__ == '__main__':
    main()
