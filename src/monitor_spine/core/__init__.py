"""Monitor Core -- storage, errors, configuration and background jobs.

Architecture::

    Layer 1 -- Errors & Configuration
        errors.py          Structured error hierarchy (MonitorError, TransientError)
        settings.py        MonitorSettings (pydantic-settings, MONITOR_* env vars)
        logging.py         structlog configuration and context binding

    Layer 2 -- Storage
        orm/               SQLAlchemy 2.0 entity tables, engine and sessions
        repositories.py    EntityStore / ProcessInstanceStore

    Layer 3 -- Background work
        retry.py           Backoff strategies for reconnects
        retention.py       RetentionSweeper (expire old process instances)
        scheduling/        ThreadSchedulerBackend (fixed-delay ticks)
"""
