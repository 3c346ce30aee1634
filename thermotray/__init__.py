"""
ThermoTray shows the CPU temperature in a desktop indicator.

The sensor is read in a separate worker process that the supervisor
restarts whenever it exits or stops sending readings.
"""

__version__ = "0.1.0"
