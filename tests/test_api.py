import json

from conftest import ADMIN_PASSWORD, ADMIN_TOKEN

PORT_LOUIS = {'lat': -20.165, 'lng': 57.501}


def register_patient(client, email='ana@example.com'):
    resp = client.post('/api/patients', json={'name': 'Ana', 'email': email, 'password': 'pw123'})
    assert resp.status_code == 201
    return resp.get_json()


def book(client, patient_id=1, doctor_id=1, **extra):
    payload = {'doctorId': doctor_id, 'patientId': patient_id, 'date': '2026-05-02', 'time': '10:00'}
    payload.update(extra)
    return client.post('/api/appointments', json=payload)


def test_index(client):
    resp = client.get('/')
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload['status'] == 'running'
    assert 'call_doctor' in payload['endpoints']


def test_unknown_route_is_json_404(client):
    resp = client.get('/api/nothing-here')
    assert resp.status_code == 404
    assert 'error' in resp.get_json()


# -----------------------
# Doctors
# -----------------------

def test_list_doctors_hides_password_hashes(client):
    doctors = client.get('/api/doctors').get_json()
    assert [d['name'] for d in doctors][:2] == ['Dr. Mahadoor', 'Dr. Ramdin']
    assert all('passwordHash' not in d for d in doctors)


def test_register_and_login_doctor(client):
    resp = client.post('/api/doctors', json={
        'name': 'Dr. Lee', 'email': 'lee@example.com', 'password': 'hunter2', 'specialty': 'ENT',
        'location': {'lat': -20.3, 'lng': 57.6},
    })
    assert resp.status_code == 201
    doctor = resp.get_json()
    assert doctor['id'] == 6
    assert 'passwordHash' not in doctor
    assert doctor['callLogs'] == []

    ok = client.post('/api/login/doctor', json={'email': 'lee@example.com', 'password': 'hunter2'})
    assert ok.status_code == 200
    assert ok.get_json()['name'] == 'Dr. Lee'

    bad = client.post('/api/login/doctor', json={'email': 'lee@example.com', 'password': 'wrong'})
    assert bad.status_code == 401
    assert bad.get_json()['error'] == 'Invalid credentials'


def test_register_doctor_validation(client):
    resp = client.post('/api/doctors', json={'name': 'Dr. NoEmail', 'password': 'x'})
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'invalid_input'


def test_register_doctor_with_oversized_location(client):
    resp = client.post('/api/doctors', json={'name': 'Dr. Far', 'email': 'far@example.com', 'password': 'x',
                                             'location': {'lat': 10 ** 400, 'lng': 57.5}})
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'invalid_input'
    assert client.post('/api/call-doctor', json=PORT_LOUIS).status_code == 200


def test_login_with_non_string_email(client):
    for path in ('/api/login/doctor', '/api/login/patient'):
        resp = client.post(path, json={'email': 5, 'password': 'x'})
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Invalid credentials'


def test_register_doctor_duplicate_email(client):
    resp = client.post('/api/doctors', json={'name': 'Dr. Copy', 'email': 'MAHADOOR@example.com', 'password': 'x'})
    assert resp.status_code == 409


def test_get_doctor(client):
    assert client.get('/api/doctors/2').get_json()['name'] == 'Dr. Ramdin'
    assert client.get('/api/doctors/404').status_code == 404


def test_call_report_patch(client, store):
    store.record_call(1, {'timestamp': 't0'})
    resp = client.patch('/api/doctors', json={'doctorId': 1, 'logIndex': 0, 'report': ' Seen at clinic '})
    assert resp.status_code == 200
    assert resp.get_json()['callLogs'][0]['report'] == 'Seen at clinic'

    assert client.patch('/api/doctors', json={'doctorId': 1, 'logIndex': 3, 'report': 'x'}).status_code == 404
    assert client.patch('/api/doctors', json={'doctorId': 1, 'logIndex': '0', 'report': 'x'}).status_code == 400
    assert client.patch('/api/doctors', json={'doctorId': 1, 'logIndex': 0, 'report': ''}).status_code == 400


# -----------------------
# Patients
# -----------------------

def test_patient_register_login_and_favorites(client):
    patient = register_patient(client)
    assert patient['favoriteDoctorIds'] == []

    login = client.post('/api/login/patient', json={'email': 'ANA@example.com', 'password': 'pw123'})
    assert login.status_code == 200
    assert login.get_json()['id'] == patient['id']
    assert client.post('/api/login/patient', json={'email': 'ana@example.com'}).status_code == 401
    assert client.post('/api/login/patient', json={'email': 'nobody@example.com', 'password': 'x'}).status_code == 401

    resp = client.patch('/api/patients', json={'patientId': patient['id'], 'favoriteDoctorIds': [1, '2', True, None]})
    assert resp.status_code == 200
    assert resp.get_json()['favoriteDoctorIds'] == [1, 2]


def test_favorites_validation(client):
    assert client.patch('/api/patients', json={'favoriteDoctorIds': [1]}).status_code == 400
    assert client.patch('/api/patients', json={'patientId': 99, 'favoriteDoctorIds': [1]}).status_code == 404


def test_patient_duplicate_email(client):
    register_patient(client)
    resp = client.post('/api/patients', json={'name': 'Ana 2', 'email': 'ana@example.com', 'password': 'x'})
    assert resp.status_code == 409


def test_list_patients(client):
    patients = client.get('/api/patients').get_json()
    assert patients[0]['name'] == 'John Smith'
    assert 'passwordHash' not in patients[0]


# -----------------------
# Appointments
# -----------------------

def test_booking_sends_slack_notification(client, notifier):
    resp = book(client)
    assert resp.status_code == 201
    appt = resp.get_json()
    assert appt['status'] == 'pending'
    assert appt['doctorId'] == 1
    assert notifier.messages == [
        'New appointment booked!\nPatient: John Smith\nDoctor: Dr. Mahadoor\n'
        'Date: 2026-05-02\nTime: 10:00\nStatus: pending'
    ]


def test_booking_survives_slack_failure(client, notifier):
    notifier.fail = True
    resp = book(client)
    assert resp.status_code == 201
    assert client.get('/api/appointments').get_json()[0]['id'] == resp.get_json()['id']


def test_booking_validation(client):
    assert client.post('/api/appointments', json={'doctorId': 1}).status_code == 400
    assert book(client, status='maybe').status_code == 400
    assert book(client, doctor_id=99).status_code == 404
    assert book(client, patient_id=99).status_code == 404


def test_list_appointments_filters(client):
    other = register_patient(client)
    book(client, patient_id=1, doctor_id=1)
    book(client, patient_id=other['id'], doctor_id=2)
    assert len(client.get('/api/appointments').get_json()) == 2
    assert [a['doctorId'] for a in client.get(f"/api/appointments?patientId={other['id']}").get_json()] == [2]
    assert [a['patientId'] for a in client.get('/api/appointments?doctorId=1').get_json()] == [1]


def test_appointment_report_and_status(client):
    appt = book(client).get_json()
    resp = client.patch('/api/appointments', json={'appointmentId': appt['id'], 'report': 'Follow-up in 2 weeks',
                                                   'status': 'confirmed'})
    assert resp.status_code == 200
    updated = resp.get_json()
    assert updated['report'] == 'Follow-up in 2 weeks'
    assert updated['status'] == 'confirmed'

    assert client.patch('/api/appointments', json={'appointmentId': appt['id']}).status_code == 400
    assert client.patch('/api/appointments', json={'appointmentId': appt['id'], 'status': 'done'}).status_code == 400
    assert client.patch('/api/appointments', json={'report': 'x'}).status_code == 400
    assert client.patch('/api/appointments', json={'appointmentId': 77, 'report': 'x'}).status_code == 404


def test_cancel_by_owner(client):
    appt = book(client).get_json()
    resp = client.post(f"/api/appointments/{appt['id']}/cancel", json={'patientId': 1})
    assert resp.status_code == 200
    assert resp.get_json() == {'ok': True, 'appointmentId': appt['id'], 'status': 'cancelled'}


def test_cancel_by_admin_and_unauthorized(client):
    appt = book(client).get_json()
    path = f"/api/appointments/{appt['id']}/cancel"
    assert client.post(path, json={'patientId': 2}).status_code == 401
    assert client.post(path, json={}, headers={'X-Admin-Token': 'wrong'}).status_code == 401
    assert client.post(path, json={}, headers={'X-Admin-Token': ADMIN_TOKEN}).status_code == 200
    assert client.post('/api/appointments/999/cancel', json={'patientId': 1}).status_code == 404


# -----------------------
# Emergency call
# -----------------------

def test_call_doctor_returns_three_nearest(client, store, notifier):
    resp = client.post('/api/call-doctor', json=dict(PORT_LOUIS, name='Ana', phone='+230 5123 4567'))
    assert resp.status_code == 200
    payload = resp.get_json()
    assert [d['name'] for d in payload['doctors']] == ['Dr. Ramdin', 'Dr. Mahadoor', 'Dr. Jeebun']
    assert all('distanceKm' in d and 'passwordHash' not in d for d in payload['doctors'])
    assert payload['warnings'] == []
    assert len(notifier.messages) == 1
    assert store.get_doctor(2)['callLogs'][0]['patientName'] == 'Ana'


def test_call_doctor_accepts_numeric_strings(client):
    resp = client.post('/api/call-doctor', json={'lat': '-20.165', 'lng': '57.501'})
    assert resp.status_code == 200


def test_call_doctor_direct_mode(client, notifier):
    resp = client.post('/api/call-doctor', json=dict(PORT_LOUIS, mode='direct'))
    assert resp.status_code == 200
    assert notifier.messages == []


def test_call_doctor_invalid_location(client):
    for body in ({}, {'lat': 'x', 'lng': 57.5}, {'lat': -20.1}, {'lat': 120, 'lng': 57.5},
                 {'lat': 10 ** 400, 'lng': 57.5}):
        resp = client.post('/api/call-doctor', json=body)
        assert resp.status_code == 400
        assert resp.get_json()['kind'] == 'invalid_input'


def test_call_doctor_without_usable_doctors(client, empty_store):
    client.application.config['STORE'] = empty_store
    resp = client.post('/api/call-doctor', json=PORT_LOUIS)
    assert resp.status_code == 404
    assert resp.get_json() == {'error': 'No nearest doctors found', 'kind': 'not_found'}


def test_call_doctor_slack_failure_is_a_warning(client, notifier):
    notifier.fail = True
    resp = client.post('/api/call-doctor', json=PORT_LOUIS)
    assert resp.status_code == 200
    assert resp.get_json()['warnings'][0].startswith('notification not sent')


def test_call_doctor_store_failure_is_503(client, tmp_path):
    from storage import JsonFileStore
    broken = tmp_path / 'broken.json'
    broken.write_text('{oops', encoding='utf-8')
    client.application.config['STORE'] = JsonFileStore(broken)
    resp = client.post('/api/call-doctor', json=PORT_LOUIS)
    assert resp.status_code == 503
    assert resp.get_json()['kind'] == 'collaborator_failure'


# -----------------------
# Slack webhook
# -----------------------

def test_slack_webhook_get(client):
    assert client.get('/api/slack/webhook').get_json() == {'ok': True}


def test_slack_url_verification(client):
    resp = client.post('/api/slack/webhook', json={'type': 'url_verification', 'challenge': 'abc123'})
    assert resp.get_json() == {'challenge': 'abc123'}


def test_slack_message_event_is_echoed(client, notifier):
    body = {'event': {'type': 'message', 'text': 'hello', 'user': 'U1', 'channel': 'C9'}}
    resp = client.post('/api/slack/webhook', json=body)
    assert resp.get_json() == {'ok': True}
    assert notifier.replies == [('C9', 'Received your message: hello')]


def test_slack_bot_messages_are_ignored(client, notifier):
    body = {'event': {'type': 'message', 'text': 'echo', 'bot_id': 'B1', 'channel': 'C9'}}
    client.post('/api/slack/webhook', json=body)
    assert notifier.replies == []


def test_slack_urlencoded_payload(client):
    payload = json.dumps({'type': 'url_verification', 'challenge': 'xyz'})
    resp = client.post('/api/slack/webhook', data={'payload': payload})
    assert resp.get_json() == {'challenge': 'xyz'}


def test_slack_malformed_json(client):
    resp = client.post('/api/slack/webhook', data='{bad', content_type='application/json')
    assert resp.status_code == 400


# -----------------------
# Admin
# -----------------------

def test_admin_login(client):
    ok = client.post('/api/login/admin', json={'username': 'admin', 'password': ADMIN_PASSWORD})
    assert ok.status_code == 200
    assert ok.get_json() == {'token': ADMIN_TOKEN}
    assert client.post('/api/login/admin', json={'username': 'admin', 'password': 'nope'}).status_code == 401
    assert client.post('/api/login/admin', json={'username': 'root', 'password': ADMIN_PASSWORD}).status_code == 401


def test_admin_login_disabled_without_hash(client):
    client.application.config['ADMIN_PASSWORD_HASH'] = None
    resp = client.post('/api/login/admin', json={'username': 'admin', 'password': ADMIN_PASSWORD})
    assert resp.status_code == 401


def test_admin_data_requires_token(client):
    assert client.get('/api/admin/data').status_code == 401
    resp = client.get('/api/admin/data', headers={'X-Admin-Token': ADMIN_TOKEN})
    assert resp.status_code == 200
    data = resp.get_json()
    assert set(data) == {'doctors', 'patients', 'appointments'}
    assert all('passwordHash' not in r for records in data.values() for r in records)


def test_admin_token_cookie(client):
    client.set_cookie('admin_token', ADMIN_TOKEN)
    assert client.get('/api/admin/data').status_code == 200
