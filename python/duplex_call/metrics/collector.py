"""
Prometheus Metrics Collector for duplex calls.

Provides metrics for monitoring:
- Active calls and call duration
- Captured segments and capture failures
- Outbound sends, buffering and overflow drops
- Connection state and reconnects
- Inbound messages and playback supersedes
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger("duplex.metrics")

CONNECTION_STATES = ("connecting", "open", "closing", "closed")

# Call metrics
CALLS_TOTAL = Counter(
    'duplex_calls_total',
    'Total number of calls',
    ['status']  # 'completed', 'failed'
)
CALL_DURATION = Histogram(
    'duplex_call_duration_seconds',
    'Duration of calls in seconds',
    buckets=[10, 30, 60, 120, 300, 600, 1800, 3600]
)
ACTIVE_CALLS = Gauge(
    'duplex_active_calls',
    'Number of currently active calls'
)

# Capture metrics
SEGMENTS_TOTAL = Counter(
    'duplex_segments_captured_total',
    'Audio segments captured'
)
SEGMENT_DURATION = Histogram(
    'duplex_segment_duration_seconds',
    'Duration of captured segments',
    buckets=[0.25, 0.5, 1.0, 1.5, 2.0, 5.0]
)
CAPTURE_FAILURES = Counter(
    'duplex_capture_failures_total',
    'Segment capture or encode failures'
)

# Outbound metrics
PAYLOADS_SENT = Counter(
    'duplex_payloads_sent_total',
    'Payloads sent over the WebSocket'
)
SEND_LATENCY = Histogram(
    'duplex_send_latency_seconds',
    'WebSocket send latency',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0]
)
BUFFERED_PAYLOADS = Gauge(
    'duplex_buffered_payloads',
    'Payloads waiting in the outbound buffer'
)
PAYLOADS_DROPPED = Counter(
    'duplex_payloads_dropped_total',
    'Payloads dropped due to outbound buffer overflow'
)

# Connection metrics
CONNECTION_STATE = Gauge(
    'duplex_connection_state',
    'Current connection state (1 for the active state)',
    ['state']
)
TRANSPORT_ERRORS = Counter(
    'duplex_transport_errors_total',
    'Connection drops and failed connects'
)
RECONNECTS_TOTAL = Counter(
    'duplex_reconnects_scheduled_total',
    'Reconnect attempts scheduled'
)

# Inbound metrics
INBOUND_MESSAGES = Counter(
    'duplex_inbound_messages_total',
    'Inbound messages by classification',
    ['kind']  # 'audio', 'control', 'unrecognized'
)
PLAYBACK_TOTAL = Counter(
    'duplex_playback_total',
    'Playback outcomes',
    ['outcome']  # 'completed', 'superseded', 'decode_error', 'device_error'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    Provides convenient methods for recording metrics
    and starts the Prometheus HTTP server on demand.
    """

    def __init__(self, port: int = 9090, host: str = "0.0.0.0"):
        """
        Args:
            port: Port for Prometheus HTTP server
            host: Host to bind to
        """
        self.port = port
        self.host = host
        self._started = False

    def start(self) -> bool:
        """
        Start the Prometheus HTTP server.

        Returns:
            True if the server is running
        """
        if self._started:
            return True

        try:
            start_http_server(self.port, addr=self.host)
            self._started = True
            logger.info(f"Prometheus metrics server started on {self.host}:{self.port}")
            return True
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    # Call metrics
    def call_started(self) -> None:
        ACTIVE_CALLS.inc()

    def call_ended(self, duration: float, status: str = "completed") -> None:
        ACTIVE_CALLS.dec()
        CALLS_TOTAL.labels(status=status).inc()
        CALL_DURATION.observe(duration)

    # Capture metrics
    def segment_captured(self, duration: float) -> None:
        SEGMENTS_TOTAL.inc()
        SEGMENT_DURATION.observe(duration)

    def capture_failed(self) -> None:
        CAPTURE_FAILURES.inc()

    # Outbound metrics
    def payload_sent(self, latency: float) -> None:
        PAYLOADS_SENT.inc()
        SEND_LATENCY.observe(latency)

    def payload_buffered(self, queued: int) -> None:
        BUFFERED_PAYLOADS.set(queued)

    def payload_dropped(self) -> None:
        PAYLOADS_DROPPED.inc()

    # Connection metrics
    def ws_state(self, state: str) -> None:
        """Mark `state` as the current connection state."""
        for name in CONNECTION_STATES:
            CONNECTION_STATE.labels(state=name).set(1 if name == state else 0)

    def transport_error(self) -> None:
        TRANSPORT_ERRORS.inc()

    def reconnect_scheduled(self) -> None:
        RECONNECTS_TOTAL.inc()

    # Inbound metrics
    def inbound_message(self, kind: str) -> None:
        INBOUND_MESSAGES.labels(kind=kind).inc()

    def playback(self, outcome: str) -> None:
        PLAYBACK_TOTAL.labels(outcome=outcome).inc()


# Global instance
_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get or create the global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
