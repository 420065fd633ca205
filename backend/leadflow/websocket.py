"""Real-time console notifications using Socket.IO."""

import socketio
import logging
from typing import Dict, Set, Any

logger = logging.getLogger(__name__)

# Create Socket.IO async server
sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*',
    logger=False,
    engineio_logger=False
)

# Socket.IO ASGI app
socket_app = socketio.ASGIApp(
    sio,
    socketio_path='/socket.io'
)

# Track active connections by console session
active_sessions: Dict[str, Set[str]] = {}


def get_socket_app():
    """Get the Socket.IO ASGI app for mounting."""
    return socket_app


def session_room(session_id: str) -> str:
    return f'session_{session_id}'


# Socket.IO Event Handlers

@sio.event
async def connect(sid, environ):
    """Handle client connection."""
    logger.info(f"Console client connected: {sid}")
    await sio.emit('connected', {
        'message': 'Connected to lead enrichment console',
        'sid': sid
    }, room=sid)


@sio.event
async def disconnect(sid):
    """Handle client disconnection."""
    logger.info(f"Console client disconnected: {sid}")

    for session_id, sids in list(active_sessions.items()):
        if sid in sids:
            sids.remove(sid)
            if not sids:
                del active_sessions[session_id]


@sio.event
async def join_session(sid, data):
    """Join a console session room to receive its progress messages."""
    session_id = (data or {}).get('session_id')

    if not session_id:
        await sio.emit('error', {
            'message': 'session_id is required'
        }, room=sid)
        return

    await sio.enter_room(sid, session_room(session_id))
    active_sessions.setdefault(session_id, set()).add(sid)

    logger.info(f"Client {sid} joined console session: {session_id}")

    await sio.emit('joined_session', {
        'session_id': session_id,
        'message': f'Joined console session {session_id}'
    }, room=sid)


# Notification Helper Functions

async def notify_console_log(session_id: str, entry: Dict[str, Any]):
    """Push one console log entry to everyone watching the session."""
    await sio.emit('console_log', entry, room=session_room(session_id))


def get_connection_stats():
    """Get statistics about active connections."""
    return {
        'total_connections': sum(len(sids) for sids in active_sessions.values()),
        'sessions_connected': len(active_sessions),
    }
