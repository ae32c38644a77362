"""Bookings app package.

This app owns the booking record and the two operations that guard it:
the slot conflict checker, which is the single serialization point
against double-booking an employee, and the admission service, which runs
rate limiting, conflict checking and the insert as one pipeline.
Overlaps are prevented by an employee row lock inside a transaction and,
on PostgreSQL, by an exclusion constraint.
"""
