"""Notifications app package.

Delivery channels (email and SMS) used by bookings and the waitlist.
"""
