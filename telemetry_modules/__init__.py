"""
Встроенные модули Telemetry Runtime.
"""
