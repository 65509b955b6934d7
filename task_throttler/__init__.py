"""
Task Throttler

Durable task queue with a single throttled dispatcher that enforces a
minimum spacing between consecutive executions for the same user.
"""

__version__ = "1.0.0"
