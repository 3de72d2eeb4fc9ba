"""
Logger Module - встроенный модуль логирования.

Регистрируется первым при старте TelemetryRuntime.
"""

from .module import LoggerModule

__all__ = ["LoggerModule"]
