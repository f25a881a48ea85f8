"""Prometheus metrics."""

from prometheus_client import Counter

leads_resolved = Counter('leads_resolved_total', 'Lead sightings resolved', ['result'])
calls_originated = Counter('calls_originated_total', 'Outbound calls placed')
call_turns = Counter('call_turns_total', 'Conversation turns processed', ['direction'])
demos_scheduled = Counter('demos_scheduled_total', 'Demo acceptances detected on calls')
upstream_failures = Counter('upstream_failures_total', 'Reply generator / telephony failures', ['service'])
