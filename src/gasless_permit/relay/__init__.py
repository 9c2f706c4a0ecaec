from .orchestrator import RelayOrchestrator
from .flows import setup_event_bus

__all__ = [
    "RelayOrchestrator",
    "setup_event_bus",
]
