from prometheus_client import Counter, Gauge, Histogram

# Lead sync metrics
SYNC_RUNS = Counter(
    'lead_sync_runs_total',
    'Total number of sheet sync passes',
    ['result']
)

LEAD_UPSERTS = Counter(
    'lead_upserts_total',
    'Lead upserts performed by sheet sync and form webhooks',
    ['result']
)

SYNC_DURATION = Histogram(
    'lead_sync_duration_seconds',
    'Time spent on a full sheet sync pass',
    buckets=[0.5, 1.0, 5.0, 15.0, 60.0, 300.0]
)

LAST_SYNC_TIMESTAMP = Gauge(
    'lead_sync_last_success_timestamp',
    'Unix time of the last completed sheet sync pass'
)

# Payment metrics
RECONCILIATIONS = Counter(
    'payment_reconciliations_total',
    'Payment reconciliations by outcome',
    ['outcome']
)

WEBHOOK_EVENTS = Counter(
    'payment_webhook_events_total',
    'Payment gateway notifications received',
    ['event_type']
)

GATEWAY_ERRORS = Counter(
    'payment_gateway_errors_total',
    'Failed payment gateway calls',
    ['operation']
)

# Notification metrics
NOTIFICATIONS = Counter(
    'notifications_total',
    'Outbound notifications by channel and result',
    ['channel', 'result']
)

# Service health
SERVICE_HEALTH = Gauge(
    'service_health',
    'Health status of services',
    ['service']
)
