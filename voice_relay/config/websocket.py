"""WebSocket protocol configuration and constants."""

from __future__ import annotations

WS_ENDPOINT_PATH = "/live-voice"

# Message keys
WS_KEY_TYPE = "type"
WS_KEY_DATA = "data"
WS_KEY_MIME_TYPE = "mimeType"
WS_KEY_SESSION_ID = "sessionId"
WS_KEY_SESSION_INFO = "sessionInfo"
WS_KEY_MESSAGE = "message"

# Client -> relay message types
WS_TYPE_AUDIO_CHUNK = "audio_chunk"
WS_TYPE_END_TURN = "end_turn"
WS_TYPE_PING = "ping"
WS_TYPE_SESSION_INFO = "session_info"
WS_TYPE_STOP = "stop"

# Relay -> client message types
WS_TYPE_PONG = "pong"
WS_TYPE_SESSION_STARTED = "session_started"
WS_TYPE_SESSION_STOPPED = "session_stopped"
WS_TYPE_SESSION_ENDED = "session_ended"
WS_TYPE_SESSION_INFO_RESPONSE = "session_info_response"
WS_TYPE_TRANSCRIPT = "transcript"
WS_TYPE_AUDIO = "audio"
WS_TYPE_ERROR = "error"

# Close codes
WS_CLOSE_CLIENT_REQUEST_CODE = 1000
WS_CLOSE_IDLE_CODE = 4000
WS_CLOSE_UNAUTHORIZED_CODE = 4001
WS_CLOSE_BUSY_CODE = 4002
WS_CLOSE_UPSTREAM_ERROR_CODE = 4003

WS_CLOSE_IDLE_REASON = "idle timeout"
WS_CLOSE_SESSION_REASON = "Session cleanup"

# Errors (error.code values)
WS_ERROR_AUTH_FAILED = "authentication_failed"
WS_ERROR_SERVER_AT_CAPACITY = "server_at_capacity"
WS_ERROR_INVALID_MESSAGE = "invalid_message"
WS_ERROR_INVALID_PAYLOAD = "invalid_payload"
WS_ERROR_AUDIO_PROCESSING = "audio_processing_error"
WS_ERROR_UPSTREAM = "upstream_error"
WS_ERROR_RATE_LIMITED = "rate_limited"

# Receive poll interval; lets the loop notice a torn-down session promptly.
WS_RECEIVE_TICK_S = 5.0

__all__ = [
    "WS_ENDPOINT_PATH",
    "WS_KEY_TYPE",
    "WS_KEY_DATA",
    "WS_KEY_MIME_TYPE",
    "WS_KEY_SESSION_ID",
    "WS_KEY_SESSION_INFO",
    "WS_KEY_MESSAGE",
    "WS_TYPE_AUDIO_CHUNK",
    "WS_TYPE_END_TURN",
    "WS_TYPE_PING",
    "WS_TYPE_SESSION_INFO",
    "WS_TYPE_STOP",
    "WS_TYPE_PONG",
    "WS_TYPE_SESSION_STARTED",
    "WS_TYPE_SESSION_STOPPED",
    "WS_TYPE_SESSION_ENDED",
    "WS_TYPE_SESSION_INFO_RESPONSE",
    "WS_TYPE_TRANSCRIPT",
    "WS_TYPE_AUDIO",
    "WS_TYPE_ERROR",
    "WS_CLOSE_CLIENT_REQUEST_CODE",
    "WS_CLOSE_IDLE_CODE",
    "WS_CLOSE_UNAUTHORIZED_CODE",
    "WS_CLOSE_BUSY_CODE",
    "WS_CLOSE_UPSTREAM_ERROR_CODE",
    "WS_CLOSE_IDLE_REASON",
    "WS_CLOSE_SESSION_REASON",
    "WS_ERROR_AUTH_FAILED",
    "WS_ERROR_SERVER_AT_CAPACITY",
    "WS_ERROR_INVALID_MESSAGE",
    "WS_ERROR_INVALID_PAYLOAD",
    "WS_ERROR_AUDIO_PROCESSING",
    "WS_ERROR_UPSTREAM",
    "WS_ERROR_RATE_LIMITED",
    "WS_RECEIVE_TICK_S",
]
