"""Monitoring configuration for drillbook."""
from prometheus_client import Counter, Histogram, start_http_server

# Round metrics
rounds_started = Counter(
    "drillbook_rounds_started_total",
    "Total number of practice rounds started",
)

rounds_completed = Counter(
    "drillbook_rounds_completed_total",
    "Total number of practice rounds in which every word was solved",
)

round_attempts = Counter(
    "drillbook_round_attempts_total",
    "Total number of attempts recorded against a round",
    ["correct"],
)

record_retries = Counter(
    "drillbook_record_retries_total",
    "Number of round attempts retried after a concurrent update",
)

# Practice metrics
attempts_recorded = Counter(
    "drillbook_attempts_total",
    "Total number of free practice attempts recorded",
    ["correct"],
)

attempt_time = Histogram(
    "drillbook_attempt_time_ms",
    "Time spent answering a single flashcard in milliseconds",
    buckets=[500, 1000, 2000, 3000, 5000, 10000, 30000],
)

# Word management metrics
words_added = Counter(
    "drillbook_words_added_total",
    "Total number of words added to dictionaries",
)

words_deleted = Counter(
    "drillbook_words_deleted_total",
    "Total number of words removed from dictionaries",
)

# Error metrics
error_count = Counter(
    "drillbook_errors_total",
    "Total number of errors encountered",
    ["error_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
