"""
The worker package runs inside the spawned sensor process.
It polls a value source and streams readings to the supervisor's channel.
"""

from .loop import worker_main, run_worker
from .sources import ValueSource, create_source

__all__ = ["worker_main", "run_worker", "ValueSource", "create_source"]
