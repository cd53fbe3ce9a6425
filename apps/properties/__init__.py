"""Properties app package.

Property listings and their per-day calendar (availability, price
adjustments, minimum stay), plus the cached availability reads used
before booking.
"""
