"""
Event Broadcaster - Server-Sent Events (SSE)
Fans kiosk events out to every connected browser
"""
import json
import queue
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional


class EventBroadcaster:
    """Keeps one bounded queue per SSE client"""

    def __init__(self, logger=None, max_queue_size: int = 50):
        self.clients: List[queue.Queue] = []
        self.clients_lock = threading.Lock()
        self.logger = logger
        self.max_queue_size = max_queue_size

    def add_client(self) -> queue.Queue:
        client_queue = queue.Queue(maxsize=self.max_queue_size)

        with self.clients_lock:
            self.clients.append(client_queue)
            total = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] New client connected. Total: {total}")

        return client_queue

    def remove_client(self, client_queue: queue.Queue):
        with self.clients_lock:
            if client_queue not in self.clients:
                return
            self.clients.remove(client_queue)
            remaining = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] Client disconnected. Remaining: {remaining}")

    def broadcast_event(self, event_data: Dict[str, Any]):
        """
        Send an event to every client

        Args:
            event_data: dict with
                - type: event name ('attendance_updated', 'face_recognized', ...)
                - data: payload
                - timestamp: optional, filled in when missing
        """
        event_data = dict(event_data)
        event_data.setdefault('timestamp', datetime.now().isoformat())

        message = self.format_sse_message(event_data)

        stale_clients = []
        with self.clients_lock:
            for client_queue in self.clients:
                try:
                    client_queue.put_nowait(message)
                except queue.Full:
                    stale_clients.append(client_queue)
            delivered = len(self.clients) - len(stale_clients)

        for client_queue in stale_clients:
            if self.logger:
                self.logger.warning("[SSE] Client queue full, dropping client")
            self.remove_client(client_queue)

        if self.logger and delivered:
            self.logger.debug(f"[SSE] Broadcast {event_data.get('type', 'unknown')} to {delivered} clients")

    @staticmethod
    def format_sse_message(event_data: Dict[str, Any]) -> str:
        """event: <type>\\ndata: <json>\\n\\n"""
        event_type = event_data.get('type', 'message')
        return f"event: {event_type}\ndata: {json.dumps(event_data)}\n\n"

    def broadcast_recognition_event(self, outcome: Dict[str, Any]):
        self.broadcast_event({'type': 'face_recognized', 'data': outcome})

    def broadcast_capture_status(self, status: str, message: str):
        self.broadcast_event({
            'type': 'capture_status',
            'data': {
                'status': status,
                'message': message,
            }
        })

    def broadcast_student_change(self, action: str, student_id: str, student_name: Optional[str] = None):
        self.broadcast_event({
            'type': 'students_updated',
            'data': {
                'action': action,
                'student_id': student_id,
                'student_name': student_name,
            }
        })

    def broadcast_system_message(self, message: str, level: str = 'info'):
        self.broadcast_event({
            'type': 'system_message',
            'data': {
                'message': message,
                'level': level,  # 'info', 'warning', 'error', 'success'
            }
        })

    def get_client_count(self) -> int:
        with self.clients_lock:
            return len(self.clients)

    def cleanup(self):
        with self.clients_lock:
            self.clients.clear()

        if self.logger:
            self.logger.info("[SSE] All clients removed")
