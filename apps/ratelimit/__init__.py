"""Rate limiting (admission control) app.

Every mutating endpoint consults the limiter before doing work. Counters
are fixed windows keyed by (identifier, identifier type, action type) and
live behind a small store interface so tests can use an in-memory map and
production can use the database.
"""
