"""
Logging, progress reporting and Prometheus metrics.
"""
