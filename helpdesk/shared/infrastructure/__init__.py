"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Logging setup
- Metrics counters and OTLP export
- Routing policy loading and hot-reload
"""
