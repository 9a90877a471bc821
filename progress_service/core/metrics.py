from prometheus_client import Counter, Gauge, Histogram

GOALS_CREATED_TOTAL = Counter(
    "goals_created_total",
    "Total number of goals created",
)

BUDGETS_CREATED_TOTAL = Counter(
    "budgets_created_total",
    "Total number of budgets created",
)

PROGRESS_EVENTS_TOTAL = Counter(
    "progress_events_total",
    "Progress events emitted by the tracker",
    ["type"],
)

NOTIFICATIONS_SUPPRESSED_TOTAL = Counter(
    "notifications_suppressed_total",
    "Progress events dropped by user notification preferences",
    ["type"],
)

GOAL_ACHIEVEMENT_TIME = Histogram(
    "goal_achievement_time_seconds",
    "Time taken to achieve a goal in seconds",
    buckets=[
        86_400,      # 1 day
        604_800,     # 1 week
        2_592_000,   # 1 month
        7_776_000,   # 3 months
        15_552_000,  # 6 months
    ],
)

KAFKA_CONSUMER_LAG = Gauge(
    "kafka_consumer_lag",
    "Approximate lag of kafka consumer group",
    ["topic", "partition"],
)

KAFKA_DLQ_ERRORS = Counter(
    "kafka_dlq_errors_total",
    "Total number of messages sent to DLQ",
    ["topic", "reason"],
)


def record_progress_events(events) -> None:
    for event in events:
        PROGRESS_EVENTS_TOTAL.labels(type=event.type.value).inc()
