"""Finances app package.

Payment records for bookings and the payment gateway integration
(Kaspi Pay). The booking services are the only callers of the gateway.
"""
