"""
webauth_proxy.overlay

Overlay network boundary.

Responsibilities:
- Talk to the overlay daemon's local API (status, whois, certificates).
- Open listeners on the node's overlay interface.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Everything else depends on this boundary, never on the local API wire format.
