"""
Service container stored on ``app.extensions['facecheck']``
"""
from dataclasses import dataclass

from flask import current_app

EXTENSION_KEY = 'facecheck'


@dataclass
class KioskServices:
    database: object
    provider: object
    gallery: object
    matcher: object
    attendance: object
    registry: object
    capture: object
    broadcaster: object


def get_services(app=None) -> KioskServices:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
