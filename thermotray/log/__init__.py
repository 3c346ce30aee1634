"""
Logging module for the application.
This module provides functionality to set up logging for the supervisor
and the worker processes.
"""

from .setup import setup_logging, setup_worker_logging

__all__ = ["setup_logging", "setup_worker_logging"]
