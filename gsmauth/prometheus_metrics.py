"""Prometheus metrics export for the auth server."""

from prometheus_client import Counter, Gauge, Histogram, start_http_server


OUTCOME_STORED = "stored"
OUTCOME_STORE_FAILURE = "store_failure"
OUTCOME_DEADLINE_EXCEEDED = "deadline_exceeded"
OUTCOME_INVALID = "invalid"

# Module-level metrics (collectors may only be registered once per process)
_metrics_initialized = False
_requests_total = None
_request_duration = None
_active_connections = None


def _init_metrics():
    """Initialize metrics only once."""
    global _metrics_initialized, _requests_total, _request_duration, _active_connections
    
    if _metrics_initialized:
        return
    
    _requests_total = Counter('gsmauth_requests_total', 'HashAndStore requests by outcome', ['outcome'])
    _request_duration = Histogram('gsmauth_request_duration_seconds', 'HashAndStore latency',
                                  buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0])
    _active_connections = Gauge('gsmauth_active_connections', 'Open client connections')
    
    _metrics_initialized = True


class PrometheusMetrics:
    """Prometheus metrics collector."""
    
    _server_started = False
    
    def __init__(self, port: int = 9090):
        self.port = port
        _init_metrics()
        
        self.requests_total = _requests_total
        self.request_duration = _request_duration
        self.active_connections = _active_connections
    
    def start(self):
        """Start Prometheus metrics server."""
        if not PrometheusMetrics._server_started:
            start_http_server(self.port)
            PrometheusMetrics._server_started = True
    
    def record_request(self, outcome: str, duration: float = None):
        """Count a finished request and, when timed, observe its latency."""
        self.requests_total.labels(outcome=outcome).inc()
        if duration is not None:
            self.request_duration.observe(duration)
    
    def update_active_connections(self, count: int):
        self.active_connections.set(count)
