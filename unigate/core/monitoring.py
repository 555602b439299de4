"""Prometheus counters for the gateway's cache, in-flight and dispatch paths.

Metrics are registered once on the default registry at import; exporting
them (``prometheus_client.start_http_server``) is left to the host.
"""
import prometheus_client as prom

CACHE_LOOKUPS = prom.Counter(
    'unigate_cache_lookups_total',
    'Response cache lookups',
    ['api', 'outcome'],
)
PROVIDER_DISPATCHES = prom.Counter(
    'unigate_provider_dispatches_total',
    'Outbound provider calls',
    ['api', 'provider'],
)
INFLIGHT_JOINS = prom.Counter(
    'unigate_inflight_joins_total',
    'Callers that joined an already running identical request',
)


def record_cache_lookup(api: str, hit: bool) -> None:
    CACHE_LOOKUPS.labels(api=api, outcome='hit' if hit else 'miss').inc()


def record_dispatch(api: str, provider: str) -> None:
    PROVIDER_DISPATCHES.labels(api=api, provider=provider).inc()
