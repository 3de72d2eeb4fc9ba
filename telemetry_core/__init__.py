"""
Telemetry Core - ядро сбора метрик наблюдаемого runtime.
"""

from .clock import Clock, SystemClock
from .config import Config
from .emitter import Emitter, EventBusEmitter
from .errors import (
    CatalogError,
    CollectionError,
    EmitterUnavailable,
    Inconsistent,
    Malformed,
    SourceUnavailable,
    TelemetryError,
    Unsupported,
)
from .event_bus import EventBus
from .logger_helper import info, warning, error
from .metrics import CollectionResult, MetricCatalog, MetricDef, MetricGroup, OneShot, Periodic, Sample, Unit
from .plugin_manager import PluginManager
from .poller import Poller
from .runtime import TelemetryRuntime
from .runtime_module import RuntimeModule
from .service_registry import ServiceRegistry

__all__ = [
    "Clock",
    "SystemClock",
    "Config",
    "Emitter",
    "EventBusEmitter",
    "EventBus",
    "ServiceRegistry",
    "PluginManager",
    "Poller",
    "TelemetryRuntime",
    "RuntimeModule",
    "MetricCatalog",
    "MetricDef",
    "MetricGroup",
    "OneShot",
    "Periodic",
    "Sample",
    "CollectionResult",
    "Unit",
    "TelemetryError",
    "CatalogError",
    "CollectionError",
    "Unsupported",
    "SourceUnavailable",
    "Inconsistent",
    "Malformed",
    "EmitterUnavailable",
    "info",
    "warning",
    "error",
]
