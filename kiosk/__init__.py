"""
App package initialization
Builds the Flask kiosk application around the facecheck core
"""
import os
import time
from datetime import datetime

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

import config
from database import DatabaseManager
from facecheck.attendance import AttendancePolicy, AttendanceService, late_after
from facecheck.errors import (
    CameraError,
    FaceCheckError,
    GalleryError,
    MatcherError,
    ProviderUnavailable,
    RegistrationError,
    StorageError,
)
from facecheck.inference import load_embedding_provider
from facecheck.recognition import FACE_MATCH_THRESHOLD, Gallery, Matcher
from facecheck.vision import CameraConfig
from kiosk.extensions import EXTENSION_KEY, KioskServices, get_services
from kiosk.models import CaptureService, EventBroadcaster, StudentRegistry
from logging_config import api_logger, log_request_info, setup_logging

ERROR_STATUS = (
    (RegistrationError, 400),
    (GalleryError, 400),
    (MatcherError, 400),
    (ProviderUnavailable, 503),
    (CameraError, 503),
    (StorageError, 500),
)


def _parse_cutoff(value):
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), '%H:%M').time()
    except ValueError as exc:
        raise ValueError(f"LATE_CUTOFF must be HH:MM, got '{value}'") from exc


def _init_embedding_provider(app):
    """Use an injected provider, otherwise load the configured backend"""
    provider = app.config.get('EMBEDDING_PROVIDER')
    if provider is not None:
        return provider
    provider = load_embedding_provider(
        app.config['FACE_BACKEND'],
        options={
            'face_recognition': {'model': app.config['FACE_DETECTION_MODEL']},
            'deepface': {'model_name': app.config['DEEPFACE_MODEL_NAME']},
        },
        logger=app.logger,
    )
    if not provider.ready():
        app.logger.warning("[STARTUP] Face models failed to load, recognition runs degraded")
    return provider


def _init_services(app):
    cfg = app.config

    database = DatabaseManager(cfg['DATABASE_PATH'])
    provider = _init_embedding_provider(app)
    broadcaster = EventBroadcaster(logger=app.logger)

    gallery = Gallery(logger=app.logger)
    threshold = cfg.get('FACE_MATCH_THRESHOLD')
    if threshold is None:
        threshold = getattr(provider, 'match_threshold', FACE_MATCH_THRESHOLD)
    matcher = Matcher(gallery, threshold=threshold, logger=app.logger)
    app.logger.info(f"[STARTUP] Match threshold {threshold} ({provider.name})")

    cutoff = _parse_cutoff(cfg.get('LATE_CUTOFF'))
    policy = AttendancePolicy(
        dedup_window=cfg['DEDUP_WINDOW_SECONDS'],
        status_resolver=late_after(cutoff) if cutoff else None,
    )
    attendance = AttendanceService(
        store=database,
        policy=policy,
        student_lookup=database.get_student,
        broadcaster=broadcaster.broadcast_event,
        logger=app.logger,
    )

    def refresh_gallery():
        try:
            gallery.rebuild(database.list_students())
        except GalleryError as exc:
            app.logger.error(f"[Gallery] Rebuild rejected, keeping previous faces: {exc}")
            broadcaster.broadcast_system_message(f"Face gallery not updated: {exc}", level='error')

    database.add_change_listener(refresh_gallery)
    refresh_gallery()

    registry = StudentRegistry(
        database,
        provider,
        cfg['FACE_DATA_DIR'],
        gallery=gallery,
        demo_mode=cfg['DEMO_MODE'],
        broadcaster=broadcaster,
        logger=app.logger,
    )

    capture = CaptureService(
        provider=provider,
        matcher=matcher,
        attendance=attendance,
        camera_config=CameraConfig(
            index=cfg['CAMERA_INDEX'],
            width=cfg['CAMERA_WIDTH'],
            height=cfg['CAMERA_HEIGHT'],
            warmup_frames=cfg['CAMERA_WARMUP_FRAMES'],
            buffer_size=cfg['CAMERA_BUFFER_SIZE'],
        ),
        interval=cfg['CAPTURE_INTERVAL_SECONDS'],
        broadcaster=broadcaster,
        source_factory=cfg.get('CAMERA_SOURCE_FACTORY'),
        logger=app.logger,
    )

    return KioskServices(
        database=database,
        provider=provider,
        gallery=gallery,
        matcher=matcher,
        attendance=attendance,
        registry=registry,
        capture=capture,
        broadcaster=broadcaster,
    )


def _register_request_logging(app):
    @app.before_request
    def _log_request():
        if request.path.startswith('/api/'):
            g.request_started = time.perf_counter()
            log_request_info(request)

    @app.after_request
    def _log_response(response):
        started = g.pop('request_started', None)
        if started is not None:
            api_logger.log_response(request.path, response.status_code, time.perf_counter() - started)
        return response


def _register_error_handlers(app):
    @app.errorhandler(FaceCheckError)
    def _handle_facecheck_error(exc):
        status = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
        api_logger.log_error(request.path, exc, status)
        return jsonify({'success': False, 'message': str(exc)}), status

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc):
        if not request.path.startswith('/api/'):
            return exc
        return jsonify({'success': False, 'message': exc.description}), exc.code


def create_app(test_config=None):
    """Factory function for the kiosk application"""
    app = Flask(__name__)
    app.config.from_mapping(config.as_dict())
    if test_config:
        app.config.from_mapping(test_config)

    setup_logging(app, app.config['LOG_LEVEL'], app.config['LOG_DIR'])
    app.logger.info(f"[STARTUP] Working directory: {os.getcwd()}")
    app.logger.info(f"[STARTUP] Database path: {os.path.abspath(app.config['DATABASE_PATH'])}")

    app.extensions[EXTENSION_KEY] = _init_services(app)
    app.logger.info("[STARTUP] All services initialized")

    _register_request_logging(app)
    _register_error_handlers(app)

    from kiosk.routes import register_blueprints
    register_blueprints(app)

    return app


__all__ = ['create_app', 'get_services']
