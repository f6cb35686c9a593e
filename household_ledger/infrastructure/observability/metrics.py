"""Prometheus metrics for ledger postings, loan servicing, card billing and refresh delivery"""

from prometheus_client import Counter, Histogram

# Ledger metrics
posting_counter = Counter(
    "ledger_postings_total",
    "Transactions posted to accounts",
    ["kind"],  # INCOME | EXPENSE
)

reversal_counter = Counter(
    "ledger_reversals_total",
    "Transactions reversed",
)

transfer_counter = Counter(
    "ledger_transfers_total",
    "Linked two-leg transfers posted",
)

conflict_counter = Counter(
    "ledger_conflicts_total",
    "Writes aborted by concurrency control",
    ["reason"],  # stale_version | integrity | lock_timeout
)

# Loan metrics
emi_payment_counter = Counter(
    "ledger_emi_payments_total",
    "EMIs marked paid",
)

prepayment_counter = Counter(
    "ledger_loan_prepayments_total",
    "Loan prepayments recorded",
    ["strategy"],  # REDUCE_TENURE | REDUCE_EMI
)

loan_closed_counter = Counter(
    "ledger_loans_closed_total",
    "Loans whose outstanding principal reached zero",
)

# Credit card metrics
card_charge_counter = Counter(
    "ledger_card_charges_total",
    "Credit card charge attempts",
    ["outcome"],  # accepted | limit_exceeded
)

card_payment_counter = Counter(
    "ledger_card_payments_total",
    "Credit card payments applied",
    ["payment_type"],
)

statement_counter = Counter(
    "ledger_statements_generated_total",
    "Credit card statements generated",
)

# Aggregation refresh metrics
refresh_latency_histogram = Histogram(
    "analytics_refresh_latency_seconds",
    "Aggregation refresh response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

refresh_failure_counter = Counter(
    "analytics_refresh_failures_total",
    "Failed aggregation refresh deliveries",
)

after_commit_failure_counter = Counter(
    "ledger_after_commit_failures_total",
    "After-commit callbacks that raised",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_card_charge(accepted: bool) -> None:
    """Count card charge outcomes for limit-rejection monitoring"""
    card_charge_counter.labels(outcome="accepted" if accepted else "limit_exceeded").inc()
