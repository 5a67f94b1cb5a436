import base64
import io
import json
import time
from datetime import date

import pytest

from conftest import FakeSource, make_photo


def _register(client, name='Ayu', nis='1001', descriptor=(0.0, 0.0, 0.0, 0.0), class_name='10 IPA 1'):
    response = client.post('/api/students', json={
        'name': name,
        'nis': nis,
        'class_name': class_name,
        'face_descriptor': list(descriptor),
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()['data']


def test_register_and_list_students(client):
    student = _register(client)

    response = client.get('/api/students')

    body = response.get_json()
    assert body['success'] is True
    assert [s['id'] for s in body['data']] == [student['id']]


def test_register_with_base64_photo(client, provider):
    provider.next_embedding([0.2, 0.2, 0.2, 0.2])
    data_url = 'data:image/png;base64,' + base64.b64encode(make_photo()).decode()

    response = client.post('/api/students', json={'name': 'Citra', 'image': data_url})

    assert response.status_code == 201
    assert response.get_json()['data']['face_descriptor'] == pytest.approx([0.2] * 4)


def test_register_with_uploaded_photo(client, provider):
    provider.next_embedding([0.3, 0.3, 0.3, 0.3])

    response = client.post(
        '/api/students',
        data={'name': 'Dewi', 'nis': '3003', 'photo': (io.BytesIO(make_photo()), 'dewi.png')},
        content_type='multipart/form-data',
    )

    assert response.status_code == 201
    assert response.get_json()['data']['nis'] == '3003'


def test_register_no_face_is_bad_request(client):
    response = client.post('/api/students', json={'name': 'Eka', 'image': base64.b64encode(make_photo()).decode()})

    body = response.get_json()
    assert response.status_code == 400
    assert body['success'] is False
    assert 'No face detected' in body['message']


def test_register_rejects_bad_extension(client):
    response = client.post(
        '/api/students',
        data={'name': 'Fajar', 'photo': (io.BytesIO(b'x' * 2048), 'fajar.gif')},
        content_type='multipart/form-data',
    )

    assert response.status_code == 400


def test_get_update_delete_student(client):
    student = _register(client)
    url = f"/api/students/{student['id']}"

    assert client.get(url).get_json()['data']['name'] == 'Ayu'

    response = client.put(url, json={'name': 'Ayu Lestari', 'class_name': '11 IPS 1'})
    assert response.get_json()['data']['class_name'] == '11 IPS 1'

    assert client.delete(url).status_code == 200
    assert client.get(url).status_code == 404
    assert client.delete(url).status_code == 404


def test_enroll_additional_face(client, provider, services):
    student = _register(client)
    provider.next_embedding([0.1, 0.1, 0.1, 0.1])

    response = client.post(f"/api/students/{student['id']}/faces", json={
        'image': base64.b64encode(make_photo()).decode(),
    })

    assert response.get_json()['faces'] == 2
    assert len(services.gallery.snapshot()) == 2


def test_classes_include_defaults_and_used_classes(client):
    _register(client, class_name='12 IPS 3')

    classes = client.get('/api/classes').get_json()['data']

    assert '10 IPA 1' in classes
    assert '12 IPS 3' in classes


def test_manual_check_in_and_duplicate(client):
    student = _register(client)

    first = client.post('/api/attendance/manual', json={'student_id': student['id']})
    second = client.post('/api/attendance/manual', json={'student_id': student['id']})

    assert first.status_code == 201
    assert first.get_json()['data']['method'] == 'manual'
    assert second.status_code == 409
    assert second.get_json()['reason'] == 'too_soon'


def test_manual_check_in_unknown_student(client):
    response = client.post('/api/attendance/manual', json={'student_id': 'ghost'})

    assert response.status_code == 404


def test_attendance_for_day(client):
    student = _register(client)
    client.post('/api/attendance/manual', json={'student_id': student['id']})

    today = client.get('/api/attendance').get_json()
    other = client.get('/api/attendance?date=2000-01-01').get_json()

    assert today['date'] == date.today().isoformat()
    assert len(today['data']) == 1
    assert other['data'] == []
    assert client.get('/api/attendance?date=yesterday').status_code == 400


def test_reports_search_and_csv(client):
    ayu = _register(client, name='Ayu', nis='1001')
    budi = _register(client, name='Budi', nis='2002', descriptor=(1.0, 1.0, 1.0, 1.0))
    for student in (ayu, budi):
        client.post('/api/attendance/manual', json={'student_id': student['id']})

    report = client.get('/api/reports?q=budi').get_json()
    export = client.get('/api/reports/export.csv')

    assert [row['name'] for row in report['data']] == ['Budi']
    assert export.mimetype == 'text/csv'
    assert 'attendance_report_' in export.headers['Content-Disposition']
    lines = export.get_data(as_text=True).splitlines()
    assert lines[0] == 'Name,NIS,Date,Time,Status,Confidence'
    assert len(lines) == 3


def test_dashboard_stats(client):
    student = _register(client)
    _register(client, name='Budi', nis='2002', descriptor=(1.0, 1.0, 1.0, 1.0))
    client.post('/api/attendance/manual', json={'student_id': student['id']})

    data = client.get('/api/stats/dashboard').get_json()['data']

    assert data['total_students'] == 2
    assert data['present_today'] == 1
    assert data['absent_today'] == 1
    assert data['attendance_rate'] == 50
    assert len(data['weekly']) == 7
    assert data['weekly'][-1]['present'] == 1


def test_capture_session_checks_in_recognized_face(client, provider, source, services):
    student = _register(client)
    provider.next_embedding([0.3, 0.0, 0.0, 0.0])

    started = client.post('/api/capture/start').get_json()['data']
    assert started['running'] is True
    assert started['status'] == 'scanning'

    deadline = time.monotonic() + 2
    while time.monotonic() < deadline and not services.database.list_records():
        time.sleep(0.02)

    stopped = client.post('/api/capture/stop').get_json()['data']

    records = services.database.list_records()
    assert [r.student_id for r in records] == [student['id']]
    assert records[0].confidence == 70
    assert stopped['running'] is False
    assert source.stopped == 1


def test_capture_start_with_denied_camera(app, client, services):
    services.capture.source_factory = lambda: FakeSource(fail_start=True)

    response = client.post('/api/capture/start')

    assert response.status_code == 503
    assert response.get_json()['success'] is False
    status = client.get('/api/capture/status').get_json()['data']
    assert status['status'] == 'camera_error'


def test_capture_status_reports_gallery(client):
    _register(client)

    status = client.get('/api/capture/status').get_json()['data']

    assert status['running'] is False
    assert status['gallery']['students'] == 1


def test_unknown_api_route_is_json(client):
    response = client.get('/api/nope')

    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_broadcaster_formats_sse_messages(services):
    queue = services.broadcaster.add_client()

    services.broadcaster.broadcast_system_message('hello', level='success')

    message = queue.get_nowait()
    assert message.startswith('event: system_message\n')
    payload = json.loads(message.split('data: ', 1)[1])
    assert payload['data'] == {'message': 'hello', 'level': 'success'}
    assert 'timestamp' in payload
    services.broadcaster.remove_client(queue)
    assert services.broadcaster.get_client_count() == 0


def test_check_in_is_broadcast(client, services):
    queue = services.broadcaster.add_client()
    student = _register(client)
    client.post('/api/attendance/manual', json={'student_id': student['id']})

    events = []
    while not queue.empty():
        events.append(queue.get_nowait().split('\n', 1)[0])

    assert 'event: students_updated' in events
    assert 'event: attendance_updated' in events


def _build_app(tmp_path, provider, **overrides):
    from kiosk import create_app, get_services

    config = {
        'TESTING': True,
        'DATABASE_PATH': str(tmp_path / 'threshold.db'),
        'FACE_DATA_DIR': tmp_path / 'faces',
        'LOG_DIR': tmp_path / 'logs',
        'LOG_LEVEL': 'WARNING',
        'FACE_MATCH_THRESHOLD': None,
        'EMBEDDING_PROVIDER': provider,
        'CAMERA_SOURCE_FACTORY': FakeSource,
    }
    config.update(overrides)
    return get_services(create_app(config))


def test_match_threshold_follows_provider(tmp_path, provider):
    provider.match_threshold = 0.8

    services = _build_app(tmp_path, provider)

    assert services.matcher.threshold == pytest.approx(0.8)


def test_configured_match_threshold_wins(tmp_path, provider):
    provider.match_threshold = 0.8

    services = _build_app(tmp_path, provider, FACE_MATCH_THRESHOLD=0.45)

    assert services.matcher.threshold == pytest.approx(0.45)


def test_mismatched_primary_descriptor_is_rejected_and_gallery_keeps_updating(client, provider, services):
    ayu = _register(client)
    provider.next_embedding([0.1, 0.1, 0.1, 0.1])
    client.post(f"/api/students/{ayu['id']}/faces", json={'image': base64.b64encode(make_photo()).decode()})

    response = client.put(f"/api/students/{ayu['id']}", json={'face_descriptor': [1.0, 1.0, 1.0]})

    assert response.status_code == 400
    assert response.get_json()['success'] is False
    assert services.database.get_student(ayu['id']).face_descriptor == [0.0, 0.0, 0.0, 0.0]

    budi = _register(client, name='Budi', nis='2002', descriptor=(1.0, 1.0, 1.0, 1.0))

    assert services.gallery.snapshot().owners == (ayu['id'], ayu['id'], budi['id'])


def test_dashboard_rate_never_counts_deleted_students(client):
    ayu = _register(client)
    budi = _register(client, name='Budi', nis='2002', descriptor=(1.0, 1.0, 1.0, 1.0))
    for student in (ayu, budi):
        client.post('/api/attendance/manual', json={'student_id': student['id']})
    client.delete(f"/api/students/{budi['id']}")

    data = client.get('/api/stats/dashboard').get_json()['data']

    assert data['total_students'] == 1
    assert data['present_today'] == 1
    assert data['attendance_rate'] == 100
    assert data['checkins_today'] == 2
