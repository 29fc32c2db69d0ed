"""
Drop Relay - game event detection and reliable webhook delivery.

Turns the scattered text a game client prints during a session (kill counts,
fight durations, personal bests, loot, collection log entries, pets, quests,
levels) into single correlated events, routes them to the groups that care
about them, and delivers them to a remote webhook service with retry,
backoff and a coarse circuit breaker.

Layers:
    - ingestion: regex signal parsing and boss name normalization
    - core: kill-count cache, event correlation, auxiliary event handlers
    - routing: per-group qualification, webhook payloads, submission history
    - delivery: failure tracking, retry queue, aiohttp webhook client
    - monitoring: aggregate health reporting
"""

__version__ = "0.1.0"
