"""
Monitoring Layer - aggregate relay health.

This module provides:
    - HealthChecker: delivery, retry queue, correlator and router checks
"""

from .health_checker import AggregateHealth, ComponentHealth, HealthChecker, HealthStatus

__all__ = [
    "AggregateHealth",
    "ComponentHealth",
    "HealthChecker",
    "HealthStatus",
]
