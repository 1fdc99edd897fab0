"""Telemetry backend implementations.

Kept out of `exclog.telemetry` so transports can be swapped without touching
the buffering/dispatch core.
"""
