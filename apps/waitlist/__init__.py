"""Waitlist app package.

Waitlist intake, the offer coordinator that hands freed slots to waiting
customers through claim tokens, customer cooldowns and the lifecycle audit.
"""
