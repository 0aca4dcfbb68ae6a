"""Prometheus exporter for scheduled and on-demand iperf3 probes."""

__version__ = "1.0.0"
