"""
monitor-spine - workflow-engine monitor backend.

Consumes the engine's exported record stream, materializes the latest state
of every process, instance, job, incident, message and timer into a
relational store, and expires old process instances on a schedule.
"""

__version__ = "0.1.0"
