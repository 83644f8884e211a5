"""Constants for the Gemini Live session core."""
from __future__ import annotations

from typing import Final

# Defaults
DEFAULT_MODEL: Final = "gemini-2.5-flash-native-audio-preview-12-2025"
DEFAULT_VOICE: Final = "Zephyr"
DEFAULT_INSTRUCTIONS: Final = ""
DEFAULT_THINKING_BUDGET: Final = 4000
DEFAULT_ACTIVE_TOOLS: Final = ("get_weather", "control_light")
DEFAULT_CREDENTIAL_MINUTES: Final = 30

# Ephemeral tokens and some live features are only exposed on v1alpha
API_VERSION_DEFAULT: Final = "v1beta"
API_VERSION_EPHEMERAL: Final = "v1alpha"
# Window in which a freshly issued token may open its session
TOKEN_NEW_SESSION_WINDOW_SECONDS: Final = 60
TOKEN_USES: Final = 1

# Audio
SEND_SAMPLE_RATE: Final = 16000
RECEIVE_SAMPLE_RATE: Final = 24000
CHANNELS: Final = 1
MIC_FRAME_SIZE: Final = 4096
MIC_QUEUE_MAXSIZE: Final = 1
PCM_MIME_TYPE: Final = "audio/pcm"

# Video
VIDEO_FRAMES_PER_SECOND: Final = 2
VIDEO_FRAME_INTERVAL: Final = 1.0 / VIDEO_FRAMES_PER_SECOND
VIDEO_WIDTH: Final = 320
VIDEO_HEIGHT: Final = 240
VIDEO_JPEG_QUALITY: Final = 50
VIDEO_MIME_TYPE: Final = "image/jpeg"

# Timers
COUNTDOWN_TICK_SECONDS: Final = 1.0

# Close codes / messages that mean a resumption handle is no longer valid
RESUMPTION_REJECTED_MARKERS: Final = ("1008", "session not found", "policy violation")
# Close codes that end the receive loop as a closure rather than a fault
CLOSE_CODES: Final = ("1000", "1001", "1007", "1008", "1011")

# Events emitted by LiveSession
EVENT_STATUS_CHANGED: Final = "status_changed"
EVENT_SESSION_STARTED: Final = "session_started"
EVENT_SESSION_RESUMED: Final = "session_resumed"
EVENT_SESSION_CLOSED: Final = "session_closed"
EVENT_SESSION_RESUMPTION_UPDATE: Final = "session_resumption_update"
EVENT_GO_AWAY: Final = "go_away"
EVENT_AUDIO_SCHEDULED: Final = "audio_scheduled"
EVENT_INPUT_LEVEL: Final = "input_level"
EVENT_INPUT_TRANSCRIPTION: Final = "input_transcription"
EVENT_OUTPUT_TRANSCRIPTION: Final = "output_transcription"
EVENT_TRANSCRIPT_UPDATED: Final = "transcript_updated"
EVENT_REASONING_UPDATED: Final = "reasoning_updated"
EVENT_FUNCTION_CALL: Final = "function_call"
EVENT_TURN_COMPLETE: Final = "turn_complete"
EVENT_INTERRUPTED: Final = "interrupted"
EVENT_CREDENTIAL_COUNTDOWN: Final = "credential_countdown"
EVENT_MUTE_CHANGED: Final = "mute_changed"
EVENT_CAMERA_CHANGED: Final = "camera_changed"
EVENT_ERROR: Final = "error"

ALL_EVENTS: Final = (
    EVENT_STATUS_CHANGED,
    EVENT_SESSION_STARTED,
    EVENT_SESSION_RESUMED,
    EVENT_SESSION_CLOSED,
    EVENT_SESSION_RESUMPTION_UPDATE,
    EVENT_GO_AWAY,
    EVENT_AUDIO_SCHEDULED,
    EVENT_INPUT_LEVEL,
    EVENT_INPUT_TRANSCRIPTION,
    EVENT_OUTPUT_TRANSCRIPTION,
    EVENT_TRANSCRIPT_UPDATED,
    EVENT_REASONING_UPDATED,
    EVENT_FUNCTION_CALL,
    EVENT_TURN_COMPLETE,
    EVENT_INTERRUPTED,
    EVENT_CREDENTIAL_COUNTDOWN,
    EVENT_MUTE_CHANGED,
    EVENT_CAMERA_CHANGED,
    EVENT_ERROR,
)

# Error codes carried by EVENT_ERROR payloads and command errors
ERROR_DEVICE_ACCESS: Final = "device_access"
ERROR_PROVISIONING: Final = "provisioning_failed"
ERROR_CONNECTION: Final = "connection_failed"
ERROR_TRANSPORT: Final = "transport_error"
ERROR_CREDENTIAL_EXPIRED: Final = "credential_expired"
ERROR_INVALID_FORMAT: Final = "invalid_format"
ERROR_UNKNOWN_COMMAND: Final = "unknown_command"

# Teardown reasons
REASON_USER: Final = "user"
REASON_REMOTE_CLOSE: Final = "remote_close"
REASON_REMOTE_ERROR: Final = "remote_error"
REASON_CREDENTIAL_EXPIRED: Final = "credential_expired"
REASON_DEVICE_ERROR: Final = "device_error"
REASON_CONNECT_FAILED: Final = "connect_failed"
