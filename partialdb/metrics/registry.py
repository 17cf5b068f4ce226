from __future__ import annotations

from prometheus_client import Counter, Histogram

DB_WRITE_TOTAL = Counter(
    "partialdb_db_write_total",
    "Number of INSERT/UPDATE statements executed",
    ["table", "op_type", "status"],
)

DB_WRITE_LATENCY_SECONDS = Histogram(
    "partialdb_db_write_latency_seconds",
    "Latency of INSERT/UPDATE statements in seconds",
    ["table", "op_type"],
)

OPERATION_HITS_TOTAL = Counter(
    "partialdb_operation_hits_total",
    "The number of hits for a given method",
    ["method"],
)

OPERATION_ERRORS_TOTAL = Counter(
    "partialdb_operation_errors_total",
    "The number of errors encountered",
    ["method"],
)

# [>=0ms, >=25ms, >=50ms, >=75ms, >=100ms, >=200ms, >=400ms, >=600ms, >=800ms, >=1s, >=2s, >=4s, >=6s]
OPERATION_LATENCY_SECONDS = Histogram(
    "partialdb_operation_latency_seconds",
    "The distribution of the latencies",
    ["method"],
    buckets=(0, 0.025, 0.05, 0.075, 0.1, 0.2, 0.4, 0.6, 0.8, 1.0, 2.0, 4.0, 6.0, float("inf")),
)
