"""
webauth_proxy.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request context propagation for consistent log enrichment.
- Runtime-switchable verbose logging (log knobs).
"""

# Package marker.
