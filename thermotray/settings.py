"""
This module contains the configuration settings for the ThermoTray application.
It defines paths, supervision timings, sensor selection and logging settings.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
import sys
import pathlib
import tempfile
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
DATA_DIR = pathlib.Path(os.getenv("THERMOTRAY_DATA_DIR", pathlib.Path.home() / ".thermotray"))

#* --- Application File Paths ---
PID_FILE_PATH = DATA_DIR / "thermotray.pid"
OVERRIDES_JSON_PATH = DATA_DIR / "overrides.json"
LOG_DB_PATH = DATA_DIR / "logs.db"

#* --- Python Executable Configuration ---
# The worker is started with the same interpreter unless overridden.
PYTHON_EXECUTABLE = os.getenv("PYTHON_EXECUTABLE", sys.executable)
WORKER_PROCESS_TITLE = "ThermoTray - Worker"
APP_PROCESS_TITLE = "ThermoTray"

#* --- Channel Settings ---
CHANNEL_PREFIX = "thermotray"
# Unix socket paths are limited to ~100 characters, keep this directory short.
CHANNEL_DIR = pathlib.Path(os.getenv("THERMOTRAY_CHANNEL_DIR", tempfile.gettempdir()))
CHANNEL_POLL_INTERVAL = 0.25  # seconds between cancellation checks
CONNECT_TIMEOUT_SECONDS = 5.0

#* --- Supervisor Settings ---
QUERY_INTERVAL_SECONDS = 2.5
MONITOR_INTERVAL_SECONDS = 1.0
MAX_SILENCE_SECONDS = 10.0
STOP_TIMEOUT_SECONDS = 1.0

#* --- Sensor Settings ---
# 'psutil' reads psutil.sensors_temperatures(), 'thermal_zone' reads sysfs directly.
SENSOR_SOURCE = os.getenv("THERMOTRAY_SENSOR_SOURCE", "psutil").lower()
# Preferred psutil chip names, first match wins.
SENSOR_LABELS = [
    name.strip() for name in
    os.getenv("THERMOTRAY_SENSOR_LABELS", "coretemp,k10temp,zenpower,cpu_thermal,acpitz").split(",")
    if name.strip()
]
THERMAL_ZONE_GLOB = "/sys/class/thermal/thermal_zone*/temp"

#* --- Display Settings ---
DISPLAY_REFRESH_INTERVAL = 0.5
DISPLAY_LABEL_PREFIX = "CPU"

#* --- Logging ---
LOG_DB_ENABLED = os.getenv("THERMOTRAY_LOG_DB", "True").lower() in ('true', '1', 't')
# Default console level for the indicator, `--verbose` forces DEBUG.
VERBOSE_LOGGING = os.getenv("THERMOTRAY_VERBOSE", "False").lower() in ('true', '1', 't')

#* --- MODIFIABLE SETTINGS (Changeable through overrides.json) ---
MODIFIABLE_SETTINGS = {
    "QUERY_INTERVAL_SECONDS", "MONITOR_INTERVAL_SECONDS", "MAX_SILENCE_SECONDS",
    "SENSOR_SOURCE", "SENSOR_LABELS", "DISPLAY_LABEL_PREFIX",
    "LOG_DB_ENABLED", "LOG_BUFFER_SIZE", "LOG_BUFFER_FLUSH_INTERVAL", "LOG_HISTORY_COUNT",
    "VERBOSE_LOGGING",
}

#* --- Default Values for Modifiable Settings ---
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10
LOG_HISTORY_COUNT = 50
