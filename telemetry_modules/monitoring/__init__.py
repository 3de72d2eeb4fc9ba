"""Monitoring module: Prometheus exporter for published metric samples.

Turns every sample received on the event bus into prometheus gauge values
using the catalog metadata, and exposes `/metrics` and `/health` via a
FastAPI router.
"""

from .monitoring_module import MonitoringModule, prometheus_name

__all__ = ["MonitoringModule", "prometheus_name"]
