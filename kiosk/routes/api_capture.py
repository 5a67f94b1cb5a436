"""
API routes for the kiosk capture session
"""
from flask import Blueprint, jsonify

from kiosk.extensions import get_services

capture_api_bp = Blueprint('capture_api', __name__, url_prefix='/api/capture')


@capture_api_bp.route('/start', methods=['POST'])
def start_capture():
    """Open the camera and begin scanning. CameraError is answered with 503."""
    status = get_services().capture.start()
    return jsonify({'success': True, 'data': status})


@capture_api_bp.route('/stop', methods=['POST'])
def stop_capture():
    status = get_services().capture.stop()
    return jsonify({'success': True, 'data': status})


@capture_api_bp.route('/status', methods=['GET'])
def capture_status():
    services = get_services()
    status = services.capture.get_status()
    status['gallery'] = services.gallery.describe()
    return jsonify({'success': True, 'data': status})
