"""Monitoring: Prometheus metrics for the availability engine."""
