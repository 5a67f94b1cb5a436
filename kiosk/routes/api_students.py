"""
API routes for students
Registration, editing and face enrollment
"""
from flask import Blueprint, jsonify, request

from kiosk.extensions import get_services
from kiosk.utils import check_extension, decode_base64_image, get_request_data, parse_descriptor

student_api_bp = Blueprint('student_api', __name__, url_prefix='/api/students')


def _read_photo(data):
    """Photo bytes from a multipart ``photo`` file or a base64 ``image`` field."""
    upload = request.files.get('photo')
    if upload and upload.filename:
        check_extension(upload.filename)
        return upload.read()
    image_data = data.get('image') or data.get('photo')
    if image_data:
        return decode_base64_image(image_data)
    return None


def _not_found():
    return jsonify({'success': False, 'message': 'Student not found'}), 404


@student_api_bp.route('', methods=['GET'])
def get_students():
    """List students, optionally filtered by ``class_name``."""
    class_name = request.args.get('class_name') or None
    students = get_services().database.list_students(class_name=class_name)
    return jsonify({'success': True, 'data': [s.to_dict() for s in students]})


@student_api_bp.route('', methods=['POST'])
def create_student():
    data = get_request_data()
    try:
        photo = _read_photo(data)
        descriptor = parse_descriptor(data.get('face_descriptor'))
    except ValueError as exc:
        return jsonify({'success': False, 'message': str(exc)}), 400

    student = get_services().registry.register(
        data.get('name', ''),
        nis=data.get('nis', ''),
        class_name=data.get('class_name', ''),
        photo=photo,
        descriptor=descriptor,
    )
    return jsonify({
        'success': True,
        'message': f'Registered {student.name}',
        'data': student.to_dict(),
    }), 201


@student_api_bp.route('/<student_id>', methods=['GET', 'PUT', 'DELETE'])
def manage_student(student_id):
    services = get_services()

    if request.method == 'GET':
        student = services.database.get_student(student_id)
        if student is None:
            return _not_found()
        return jsonify({'success': True, 'data': student.to_dict()})

    if request.method == 'DELETE':
        if not services.registry.delete(student_id):
            return _not_found()
        return jsonify({'success': True, 'message': 'Student deleted'})

    data = get_request_data()
    try:
        photo = _read_photo(data)
        descriptor = parse_descriptor(data.get('face_descriptor'))
    except ValueError as exc:
        return jsonify({'success': False, 'message': str(exc)}), 400

    student = services.registry.update(
        student_id,
        name=data.get('name'),
        nis=data.get('nis'),
        class_name=data.get('class_name'),
        photo=photo,
        descriptor=descriptor,
    )
    if student is None:
        return _not_found()
    return jsonify({'success': True, 'message': 'Student updated', 'data': student.to_dict()})


@student_api_bp.route('/<student_id>/faces', methods=['POST'])
def add_student_face(student_id):
    """Add another enrollment photo for a student."""
    data = get_request_data()
    try:
        photo = _read_photo(data)
    except ValueError as exc:
        return jsonify({'success': False, 'message': str(exc)}), 400
    if not photo:
        return jsonify({'success': False, 'message': 'A face photo is required'}), 400

    student = get_services().registry.enroll_face(student_id, photo)
    if student is None:
        return _not_found()
    return jsonify({
        'success': True,
        'message': 'Face enrolled',
        'data': student.to_dict(),
        'faces': len(student.descriptors()),
    })
