"""Flow-log decoders and encoders, prometheus-style metrics, a health server, and a generator of pipeline configuration, docs and dashboards."""

__version__ = "0.1.0"