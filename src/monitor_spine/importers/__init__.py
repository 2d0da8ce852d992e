"""Record importers and the event dispatcher.

Modules
-------
base        EntityImporter -- the single idempotent upsert routine
kinds       ImporterSpec declarations, one per record domain
dispatcher  RecordDispatcher -- event filter and domain routing
"""

from monitor_spine.importers.base import EntityImporter, ImporterSpec, Projection
from monitor_spine.importers.dispatcher import DispatchOutcome, RecordDispatcher, is_event
from monitor_spine.importers.kinds import ALL_SPECS

__all__ = [
    "EntityImporter",
    "ImporterSpec",
    "Projection",
    "RecordDispatcher",
    "DispatchOutcome",
    "is_event",
    "ALL_SPECS",
]
