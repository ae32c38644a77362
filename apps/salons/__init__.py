"""Salons app package.

Holds the tenant data the booking core depends on but does not own:
salons, their employees and services, and which users may act on behalf
of a salon. Everything here is plain CRUD data consumed by the booking and
waitlist domains.
"""
