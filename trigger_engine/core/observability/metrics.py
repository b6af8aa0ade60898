from prometheus_client import Counter, Histogram

EVENTS_EVALUATED = Counter(
    'trigger_events_evaluated_total',
    'Total market events evaluated against the profile set',
    ['event_type']
)

EVALUATION_LATENCY = Histogram(
    'trigger_evaluation_duration_seconds',
    'Time spent evaluating one event against all profiles',
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, float('inf'))
)

DISPATCH_REQUESTS = Counter(
    'trigger_dispatch_requests_total',
    'Dispatch requests emitted to the execution side',
    ['family', 'direction']
)

DISPATCH_RESULTS = Counter(
    'trigger_dispatch_results_total',
    'Dispatch outcomes reported back by the execution side',
    ['family', 'outcome']
)
