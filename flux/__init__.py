"""
Flux Core

Operation event-sourcing engine: every action a host tool performs is recorded
as an immutable Signal in an append-only log, and environment state is derived
by replaying that log through a deterministic reducer.
"""

__version__ = "0.1.0"
