"""Performance counters and Prometheus metrics."""
