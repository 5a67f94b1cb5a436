"""
API routes for Server-Sent Events (SSE)
"""
import json
import queue

from flask import Blueprint, Response, stream_with_context

from kiosk.extensions import get_services

events_api_bp = Blueprint('events_api', __name__, url_prefix='/api/events')

HEARTBEAT_SECONDS = 30


@events_api_bp.route('/stream')
def api_events_stream():
    """Real-time kiosk events for the browser"""
    services = get_services()
    broadcaster = services.broadcaster
    client_queue = broadcaster.add_client()
    initial_status = services.capture.get_status()

    def event_stream():
        try:
            yield f"data: {json.dumps({'type': 'connected', 'data': initial_status})}\n\n"
            while True:
                try:
                    yield client_queue.get(timeout=HEARTBEAT_SECONDS)
                except queue.Empty:
                    # keep the connection alive through proxies
                    yield f"data: {json.dumps({'type': 'heartbeat'})}\n\n"
        finally:
            broadcaster.remove_client(client_queue)

    return Response(
        stream_with_context(event_stream()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
