"""Bookings app package.

This app encapsulates the booking domain: the reservation coordinator,
the booking lifecycle, pricing and refund policy. Reservations on one
property are serialized by a per-property lock plus a row lock on the
property inside a database transaction, so no two pending or confirmed
bookings ever share a night.
"""
