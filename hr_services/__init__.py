"""
Service composition: the dependency container and the auto-closure scheduler.

    from hr_services import EngineContainer
"""

from hr_services.container import EngineContainer
from hr_services.sweep_scheduler import AutoClosureScheduler

__all__ = ["AutoClosureScheduler", "EngineContainer"]
