"""
Defines Prometheus metrics for monitoring the upro2api application.

This module centralizes the definition of all Counter, Gauge, and Histogram
metrics used to track frame decoding, device connections, stored positions and
HTTP requests.
"""

from prometheus_client import Counter, Gauge, Histogram

FRAME_COUNTER = Counter("upro2api_frames_total", "Total frames received")
MALFORMED_FRAMES = Counter(
    "upro2api_malformed_frames_total", "Frames that did not match the Upro grammar"
)
UNKNOWN_DEVICES = Counter(
    "upro2api_unknown_devices_total", "Frames from device ids missing in the registry"
)
REJECTED_POSITIONS = Counter(
    "upro2api_rejected_positions_total", "Frames dropped by the coordinate acceptance gate"
)
DECODE_ERRORS = Counter("upro2api_decode_errors_total", "Unexpected errors while decoding")
SUCCESSFUL_DECODES = Counter("upro2api_successful_decodes_total", "Total positions decoded")
REPLIES_SENT = Counter("upro2api_replies_total", "Acknowledgment frames written to devices")
REPLY_ERRORS = Counter(
    "upro2api_reply_errors_total", "Acknowledgment frames that could not be written"
)
FUTURE_FIXES = Counter(
    "upro2api_future_fixes_total", "Positions not stored because their fix time is in the future"
)
FRAME_LATENCY = Histogram("upro2api_frame_latency_seconds", "Time spent decoding frames")
TCP_CONNECTIONS = Gauge("upro2api_tcp_connections", "Open device TCP connections")
POSITION_COUNT = Gauge("upro2api_position_count", "Number of devices with a stored position")
HISTORY_SIZE_GAUGE = Gauge(
    "upro2api_history_size", "Number of stored positions per device", ["device_id"]
)
HTTP_REQUESTS = Counter(
    "upro2api_http_requests_total", "Total HTTP requests", ["method", "endpoint", "status_code"]
)
HTTP_LATENCY = Histogram(
    "upro2api_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
)
