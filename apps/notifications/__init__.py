"""Notifications app package.

Email notifications about booking status changes, sent from Celery
tasks after the change is committed.
"""
