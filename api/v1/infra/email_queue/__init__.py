"""
Durable outbound email queue.

This package provides a database-backed job queue for contact form emails:
- PENDING jobs claimed by conditional, versioned updates
- stale-lock recovery for workers that died mid-send
- exponential backoff and dead-lettering after max attempts
- registry-based delivery callbacks, one per email job type
"""
