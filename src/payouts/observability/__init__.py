"""Metrics, request tracing and error reporting."""
