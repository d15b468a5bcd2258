"""Live session services: PIN registry, state machine, scoring, fan-out and timers.

This package contains the game core that HTTP routes and socket handlers
call into, keeping transport concerns separated from session mechanics.
"""
