"""
Hawkwatch test suite.

Unit and integration tests for configuration, alerts, counters, health
checks, metrics, the periodic loops, the service lifecycle and the HTTP
surface. Fake collaborators and a virtual clock live in conftest.py.
"""
