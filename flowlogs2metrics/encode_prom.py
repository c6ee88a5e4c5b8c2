"""Prometheus encoder: turns flow records into metrics served on ``/metrics``."""

import bisect
import json
import logging
import math
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from flowlogs2metrics.api import PromEncode, PromEncodeOperation, from_mapping
from flowlogs2metrics.encode import Encoder

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_TIME = 120
DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
METRICS_PATH = "/metrics"
RAW_VALUES_KEY = "recentRawValues"

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _format_float(value):
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _go_format(value):
    """Format a value the way the record fields are rendered as text."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_go_format(item) for item in value) + "]"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "map[" + " ".join(f"{_go_format(k)}:{_go_format(v)}" for k, v in items) + "]"
    return str(value)


def _parse_float(text):
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _escape_label_value(value):
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _label_text(pairs, extra=()):
    items = sorted(pairs) + list(extra)
    if not items:
        return ""
    return "{" + ",".join(f'{name}="{_escape_label_value(value)}"' for name, value in items) + "}"


class _MetricVec:
    """A named metric partitioned by a fixed set of label names."""

    kind = "untyped"
    _reserved_labels = frozenset()

    def __init__(self, name, label_names=(), help=""):
        if not _METRIC_NAME_RE.match(name):
            raise ValueError(f"invalid metric name {name!r}")
        label_names = tuple(label_names or ())
        for label in label_names:
            if not _LABEL_NAME_RE.match(label) or label.startswith("__") or label in self._reserved_labels:
                raise ValueError(f"invalid label name {label!r} for metric {name}")
        if len(set(label_names)) != len(label_names):
            raise ValueError(f"duplicate label names in metric {name}")
        self.name = name
        self.label_names = label_names
        self.help = help
        self._series = {}
        self._lock = threading.Lock()

    def _key(self, labels):
        if len(labels) != len(self.label_names) or set(labels) != set(self.label_names):
            raise ValueError(
                f"inconsistent label names for {self.name}: got {sorted(labels)}, want {sorted(self.label_names)}"
            )
        return tuple(str(labels[name]) for name in self.label_names)

    def _snapshot(self, state):
        return state

    def _get(self, labels):
        key = self._key(labels)
        with self._lock:
            try:
                return self._snapshot(self._series[key])
            except KeyError:
                raise KeyError(f"no series {dict(labels)} in metric {self.name}") from None

    def _delete(self, labels):
        key = self._key(labels)
        with self._lock:
            return self._series.pop(key, None) is not None

    def _sample_lines(self, pairs, state):
        yield f"{self.name}{_label_text(pairs)} {_format_float(state)}"

    def render_lines(self):
        if self.help:
            yield f"# HELP {self.name} {self.help}"
        yield f"# TYPE {self.name} {self.kind}"
        with self._lock:
            series = sorted(self._series.items())
            for key, state in series:
                pairs = list(zip(self.label_names, key))
                yield from self._sample_lines(pairs, state)


class GaugeVec(_MetricVec):
    """Single numerical values that can go up and down."""

    kind = "gauge"

    def set(self, labels, value):
        key = self._key(labels)
        with self._lock:
            self._series[key] = float(value)

    def get(self, labels):
        """Return the current value of the series with ``labels``; KeyError if absent."""
        return self._get(labels)

    def delete(self, labels):
        """Remove the series with ``labels``; return whether it existed."""
        return self._delete(labels)


class CounterVec(_MetricVec):
    """Monotonically increasing counters."""

    kind = "counter"

    def add(self, labels, value):
        value = float(value)
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        key = self._key(labels)
        with self._lock:
            self._series[key] = self._series.get(key, 0.0) + value

    def get(self, labels):
        """Return the current value of the series with ``labels``; KeyError if absent."""
        return self._get(labels)

    def delete(self, labels):
        """Remove the series with ``labels``; return whether it existed."""
        return self._delete(labels)


@dataclass
class _HistogramSeries:
    counts: list
    total: float = 0.0
    count: int = 0


class HistogramVec(_MetricVec):
    """Samples counted in configurable buckets."""

    kind = "histogram"
    _reserved_labels = frozenset({"le"})

    def __init__(self, name, label_names=(), buckets=None, help=""):
        super().__init__(name, label_names, help)
        bounds = [float(b) for b in (buckets or DEFAULT_BUCKETS)]
        if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
            bounds.pop()
        if any(lower >= upper for lower, upper in zip(bounds, bounds[1:])):
            raise ValueError(f"histogram buckets must be in increasing order: {bounds}")
        self.buckets = tuple(bounds)

    def observe(self, labels, value):
        value = float(value)
        key = self._key(labels)
        with self._lock:
            state = self._series.get(key)
            if state is None:
                state = self._series[key] = _HistogramSeries(counts=[0] * len(self.buckets))
            index = bisect.bisect_left(self.buckets, value)
            if index < len(self.buckets):
                state.counts[index] += 1
            state.total += value
            state.count += 1

    def get(self, labels):
        """Return cumulative buckets, sum and count of the series; KeyError if absent."""
        return self._get(labels)

    def delete(self, labels):
        """Remove the series with ``labels``; return whether it existed."""
        return self._delete(labels)

    def _cumulative(self, state):
        running = 0
        result = {}
        for upper, count in zip(self.buckets, state.counts):
            running += count
            result[upper] = running
        result[math.inf] = state.count
        return result

    def _snapshot(self, state):
        return {"buckets": self._cumulative(state), "sum": state.total, "count": state.count}

    def _sample_lines(self, pairs, state):
        for upper, count in self._cumulative(state).items():
            yield f"{self.name}_bucket{_label_text(pairs, [('le', _format_float(upper))])} {count}"
        yield f"{self.name}_sum{_label_text(pairs)} {_format_float(state.total)}"
        yield f"{self.name}_count{_label_text(pairs)} {state.count}"


class MetricsRegistry:
    """Collection of metrics rendered together in the text exposition format."""

    def __init__(self):
        self._metrics = {}
        self._lock = threading.Lock()

    def register(self, metric):
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"duplicate metrics collector registration attempted: {metric.name}")
            self._metrics[metric.name] = metric

    def render(self):
        with self._lock:
            metrics = sorted(self._metrics.items())
        return "".join(line + "\n" for _, metric in metrics for line in metric.render_lines())


@dataclass
class EntrySignature:
    name: str
    labels: dict = field(default_factory=dict)


@dataclass
class EntryInfo:
    signature: EntrySignature
    value: float


def generate_cache_key(signature):
    """Return the cache key identifying a metric series."""
    return f"{signature.name}{_go_format(dict(signature.labels))}"


@dataclass
class _MetricInfo:
    input: str
    label_names: list
    metric_type: str
    collector: object = None


@dataclass
class _CacheEntry:
    key: str
    labels: dict
    timestamp: int
    metric_type: str = ""
    collector: object = None


def _new_collector(item, full_name, labels):
    if item.type == PromEncodeOperation.Counter.value:
        return CounterVec(full_name, labels)
    if item.type == PromEncodeOperation.Gauge.value:
        return GaugeVec(full_name, labels)
    if item.type == PromEncodeOperation.Histogram.value:
        logger.debug("buckets = %s", item.buckets)
        return HistogramVec(full_name, labels, item.buckets)
    return None


def _raw_values(metric):
    values = metric.get(RAW_VALUES_KEY)
    if not isinstance(values, (list, tuple)) or any(
        isinstance(v, bool) or not isinstance(v, (int, float)) for v in values
    ):
        raise TypeError(f"{RAW_VALUES_KEY} must be a list of numbers, got {values!r}")
    return values


def _make_handler(registry):
    class _Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            if urlsplit(self.path).path != METRICS_PATH:
                self.send_error(404)
                return
            body = registry.render().encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            logger.debug("metrics: " + format, *args)

    return _Handler


class EncodeProm(Encoder):
    """Exposes record values as prometheus metrics and expires idle series."""

    def __init__(self, config, registry=None, clock=time.time):
        self.registry = registry if registry is not None else MetricsRegistry()
        self.prefix = config.prefix
        self.port = f":{config.port}"
        self.expiry_time = config.expiry_time or DEFAULT_EXPIRY_TIME
        self.clock = clock
        self.metrics = {}
        self.cache = OrderedDict()
        self.bound_port = None
        self._port_number = config.port
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._httpd = None
        self._threads = []
        for item in config.metrics:
            full_name = self.prefix + item.name
            labels = list(item.labels)
            collector = _new_collector(item, full_name, labels)
            if collector is None:
                logger.warning("metric %s has unknown type %r; it is not exposed", full_name, item.type)
            else:
                self.registry.register(collector)
            self.metrics[item.name] = _MetricInfo(item.value_key, labels, item.type, collector)

    def encode(self, metrics):
        with self._lock:
            out = []
            for metric in metrics:
                out.extend(self.encode_metric(metric))
            return out

    def encode_metric(self, metric):
        """Update the metrics from one record and return the entries produced."""
        with self._lock:
            out = []
            for name, info in self.metrics.items():
                if info.input not in metric:
                    logger.debug("field %s is missing", name)
                    continue
                value = _parse_float(_go_format(metric[info.input]))
                if value is None:
                    logger.debug("field cannot be converted to float: %r", metric[info.input])
                    continue
                labels = {label: _go_format(metric.get(label)) for label in info.label_names}
                entry = EntryInfo(EntrySignature(self.prefix + name, labels), value)
                out.append(entry)

                cached = self._save_entry_in_cache(entry, labels)
                cached.metric_type = info.metric_type
                collector = info.collector
                if collector is None:
                    continue
                if info.metric_type == PromEncodeOperation.Gauge.value:
                    collector.set(labels, value)
                elif info.metric_type == PromEncodeOperation.Counter.value:
                    for raw in _raw_values(metric):
                        collector.add(labels, raw)
                elif info.metric_type == PromEncodeOperation.Histogram.value:
                    for raw in _raw_values(metric):
                        collector.observe(labels, raw)
                cached.collector = collector
            return out

    def _save_entry_in_cache(self, entry, labels):
        now = int(self.clock())
        key = generate_cache_key(entry.signature)
        cached = self.cache.get(key)
        if cached is not None:
            cached.timestamp = now
            self.cache.move_to_end(key)
        else:
            cached = _CacheEntry(key=key, labels=dict(labels), timestamp=now)
            self.cache[key] = cached
        return cached

    def cleanup_expired_entries(self):
        """Remove from the metrics and the cache every series idle for too long."""
        with self._lock:
            expire_time = int(self.clock()) - self.expiry_time
            while self.cache:
                key, cached = next(iter(self.cache.items()))
                if cached.timestamp > expire_time:
                    return
                logger.debug("deleting expired entry %s", key)
                if cached.collector is not None:
                    cached.collector.delete(cached.labels)
                del self.cache[key]

    def _cleanup_loop(self):
        while not self._stop.wait(self.expiry_time):
            self.cleanup_expired_entries()

    def start(self):
        """Start serving ``/metrics`` and expiring idle entries in the background."""
        if self._httpd is not None:
            raise RuntimeError("encoder already started")
        httpd = ThreadingHTTPServer(("", self._port_number), _make_handler(self.registry))
        httpd.daemon_threads = True
        self._httpd = httpd
        self.bound_port = httpd.server_address[1]
        self._stop.clear()
        logger.info("serving prometheus metrics on port %s", self.bound_port)
        self._threads = [
            threading.Thread(target=httpd.serve_forever, name="prom-metrics", daemon=True),
            threading.Thread(target=self._cleanup_loop, name="prom-cleanup", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def close(self):
        """Stop the background server and the expiry loop."""
        self._stop.set()
        httpd, self._httpd = self._httpd, None
        if httpd is not None:
            httpd.shutdown()
            httpd.server_close()
        for thread in self._threads:
            thread.join(timeout=5)
        self._threads = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def new_encode_prom(config_json, registry=None):
    """Create a prometheus encoder from the JSON of its configuration."""
    try:
        config = from_mapping(PromEncode, json.loads(config_json))
    except (ValueError, TypeError) as err:
        raise ValueError(f"invalid prometheus encode configuration: {err}") from err
    logger.debug("expiryTime = %s", config.expiry_time or DEFAULT_EXPIRY_TIME)
    return EncodeProm(config, registry)