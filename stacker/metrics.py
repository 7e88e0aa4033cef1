from prometheus_client import Counter, Histogram

dispatch_total = Counter(
    'stacker_dispatch_total',
    'Requests dispatched by result',
    ['service', 'result']
)

handler_errors_total = Counter(
    'stacker_handler_errors_total',
    'Errors converted to responses',
    ['service', 'kind']
)

dispatch_duration_seconds = Histogram(
    'stacker_dispatch_duration_seconds',
    'Time spent running a request chain',
    ['service']
)
