"""Prometheus metrics for the application"""
from prometheus_client import Counter, Gauge, REGISTRY


def _counter(name: str, documentation: str, labelnames=()):
    # Module may be imported more than once under test; reuse the registered collector
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Discount ledger
game_completions_counter = _counter(
    'storefront_game_completions_total',
    'Total number of recorded game completions',
    ['game_type', 'discount']
)

# Checkout
checkout_sessions_counter = _counter(
    'storefront_checkout_sessions_total',
    'Total number of checkout session attempts',
    ['status']
)

discount_clamped_counter = _counter(
    'storefront_discount_clamped_total',
    'Number of client-claimed discounts that had to be clamped',
    ['boundary']
)

# Webhooks
webhook_events_counter = _counter(
    'storefront_webhook_events_total',
    'Total number of webhook events received',
    ['provider', 'event_type', 'outcome']
)

orders_materialized_counter = _counter(
    'storefront_orders_materialized_total',
    'Total number of orders written to the ledger from payment webhooks'
)

# Outbound collaborators
provider_errors_counter = _counter(
    'storefront_provider_errors_total',
    'Total number of failed calls to external providers',
    ['provider', 'operation']
)

notifications_counter = _counter(
    'storefront_notifications_total',
    'Transactional email attempts',
    ['kind', 'status']
)

# Rate limiting
rate_limited_counter = _counter(
    'storefront_rate_limited_total',
    'Requests rejected by the rate limiter',
    ['endpoint']
)

# Reconciliation sweep
reconciliation_runs_counter = _counter(
    'storefront_reconciliation_runs_total',
    'Total number of orphaned-draft reconciliation runs',
    ['status']
)


def _gauge(name: str, documentation: str):
    try:
        return Gauge(name, documentation)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


orphaned_drafts_gauge = _gauge(
    'storefront_orphaned_fulfillment_drafts',
    'Printful draft orders with no matching ledger order, as of the last sweep'
)
