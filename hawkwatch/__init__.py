"""
Hawkwatch - production monitoring for long-running async services.

Health probes with timeout racing, bounded metrics retention with threshold
alerts, an alert store with capacity eviction, named counters, lifecycle and
process fault integration, and an HTTP surface for operators.
"""

__version__ = "0.1.0"
