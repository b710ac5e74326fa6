"""
Background jobs.

Dramatiq actors running the periodic work of the referral core, and the
APScheduler process that enqueues them.
"""
