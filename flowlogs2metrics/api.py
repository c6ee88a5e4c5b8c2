"""Configuration API of the pipeline stages: field schemas, enums and defaults.

Every field carries metadata under the keys ``yaml`` (the configuration key),
``doc`` (a human readable description) and optionally ``enum`` (the name of
the enumeration that lists the allowed values) and ``omitempty``.
"""

from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Union, get_args, get_origin

TAG_YAML = "yaml"
TAG_DOC = "doc"
TAG_ENUM = "enum"
TAG_OMITEMPTY = "omitempty"


def _field(yaml, doc, *, default=MISSING, factory=MISSING, enum=None, omitempty=False):
    metadata = {TAG_YAML: yaml, TAG_DOC: doc}
    if enum is not None:
        metadata[TAG_ENUM] = enum
    if omitempty:
        metadata[TAG_OMITEMPTY] = True
    if factory is not MISSING:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


class _DocEnum(str, Enum):
    """String enum whose members carry a description."""

    def __new__(cls, value, doc):
        member = str.__new__(cls, value)
        member._value_ = value
        member.doc = doc
        return member


class PromEncodeOperation(_DocEnum):
    """Kinds of prometheus metric."""

    Gauge = ("gauge", "single numerical value that can arbitrarily go up and down")
    Counter = ("counter", "monotonically increasing counter whose value can only increase")
    Histogram = ("histogram", "counts samples in configurable buckets")


class TransformNetworkOperation(_DocEnum):
    """Kinds of network transformation rule."""

    ConnTracking = (
        "conn_tracking",
        "set output field to value of parameters field only for new flows by matching template in input field",
    )
    AddRegExIf = (
        "add_regex_if",
        "add output field if input field satisfies regex pattern from parameters field",
    )
    AddIf = ("add_if", "add output field if input field satisfies criteria from parameters field")
    AddSubnet = (
        "add_subnet",
        "add output subnet field from input field and prefix length from parameters field",
    )
    AddLocation = ("add_location", "add output location fields from input")
    AddService = (
        "add_service",
        "add output network service field from input port and parameters protocol field",
    )
    AddKubernetes = ("add_kubernetes", "add output kubernetes fields from input")


class KafkaEncodeBalancer(_DocEnum):
    """Partition balancing strategies of the kafka writer."""

    RoundRobin = ("roundRobin", "RoundRobin balancer")
    LeastBytes = ("leastBytes", "LeastBytes balancer")
    Hash = ("hash", "Hash balancer")
    Crc32 = ("crc32", "Crc32 balancer")
    Murmur2 = ("murmur2", "Murmur2 balancer")


_ENUMS = {
    "PromEncodeOperationEnum": PromEncodeOperation,
    "TransformNetworkOperationEnum": TransformNetworkOperation,
    "KafkaEncodeBalancerEnum": KafkaEncodeBalancer,
}


@lru_cache(maxsize=None)
def get_enum_name(enum, operation):
    """Return the configuration name of the member ``operation`` of ``enum``."""
    try:
        return enum[operation].value
    except KeyError:
        raise ValueError(f"can't find operation {operation} in enum {enum.__name__}") from None


def get_enum_by_name(enum_name):
    """Return the enum class referenced by an ``enum`` field tag."""
    try:
        return _ENUMS[enum_name]
    except KeyError:
        raise ValueError(f"can't find enumName {enum_name} in enums") from None


def prom_encode_operation_name(operation):
    return get_enum_name(PromEncodeOperation, operation)


def transform_network_operation_name(operation):
    return get_enum_name(TransformNetworkOperation, operation)


def kafka_encode_balancer_name(operation):
    return get_enum_name(KafkaEncodeBalancer, operation)


@dataclass
class PromMetricsItem:
    name: str = _field("name", "the metric name", default="")
    type: str = _field("type", "one of the following:", default="", enum="PromEncodeOperationEnum")
    value_key: str = _field("valuekey", "entry key from which to resolve metric value", default="")
    labels: list[str] = _field("labels", "labels to be associated with the metric", factory=list)
    buckets: list[float] = _field("buckets", "histogram buckets", factory=list)


PromMetricsItems = list[PromMetricsItem]


@dataclass
class PromEncode:
    metrics: list[PromMetricsItem] = _field(
        "metrics", "list of prometheus metric definitions, each includes:", factory=list
    )
    port: int = _field("port", 'port number to expose "/metrics" endpoint', default=0)
    prefix: str = _field("prefix", "prefix added to each metric name", default="")
    expiry_time: int = _field(
        "expirytime", "seconds of no-flow to wait before deleting prometheus data item", default=0
    )


@dataclass
class EncodeKafka:
    address: str = _field("addr", "address of kafka server", default="")
    topic: str = _field("topic", "kafka topic to write to", default="")
    balancer: str = _field("balancer", "one of the following:", default="", enum="KafkaEncodeBalancerEnum")
    write_timeout: int = _field(
        "writeTimeout", "timeout (in seconds) for write operation performed by the Writer", default=0
    )
    read_timeout: int = _field(
        "readTimeout", "timeout (in seconds) for read operation performed by the Writer", default=0
    )
    batch_bytes: int = _field(
        "batchBytes",
        "limit the maximum size of a request in bytes before being sent to a partition",
        default=0,
    )
    batch_size: int = _field(
        "batchSize",
        "limit on how many messages will be buffered before being sent to a partition",
        default=0,
    )


@dataclass
class IngestCollector:
    host_name: str = _field("hostName", "the hostname to listen on", default="")
    port: int = _field("port", "the port number to listen on", default=0)


@dataclass
class IngestKafka:
    brokers: list[str] = _field("brokers", "list of kafka broker addresses", factory=list)
    topic: str = _field("topic", "kafka topic to listen on", default="")
    group_id: str = _field("groupid", "separate groupid for each consumer on specified topic", default="")
    group_balancers: list[str] = _field(
        "groupbalancers", "list of balancing strategies (range, roundRobin, rackAffinity)", factory=list
    )
    start_offset: str = _field(
        "startoffset",
        "FirstOffset (least recent - default) or LastOffset (most recent) offset available for a partition",
        default="",
    )
    batch_read_timeout: int = _field(
        "batchreadtimeout", "how often (in milliseconds) to process input", default=0
    )


@dataclass
class DecodeAws:
    fields: list[str] = _field("fields", "list of aws flow log fields", factory=list)


@dataclass(frozen=True)
class GenericTransformRule:
    input: str = _field("input", "entry input field", default="")
    output: str = _field("output", "entry output field", default="")


GenericTransform = list[GenericTransformRule]


@dataclass
class TransformGeneric:
    rules: list[GenericTransformRule] = _field("rules", "list of transform rules, each includes:", factory=list)


@dataclass(frozen=True)
class NetworkTransformRule:
    input: str = _field("input", "entry input field", default="")
    output: str = _field("output", "entry output field", default="")
    type: str = _field("type", "one of the following:", default="", enum="TransformNetworkOperationEnum")
    parameters: str = _field("parameters", "parameters specific to type", default="")


NetworkTransformRules = list[NetworkTransformRule]


@dataclass
class TransformNetwork:
    rules: list[NetworkTransformRule] = _field("rules", "list of transform rules, each includes:", factory=list)
    kube_config_path: str = _field("kubeconfigpath", "path to kubeconfig file (optional)", default="")


@dataclass
class WriteLoki:
    url: str = _field("url", "the address of an existing Loki service to push the flows to", default="", omitempty=True)
    tenant_id: str = _field("tenantID", "identifies the tenant for the request", default="", omitempty=True)
    batch_wait: str = _field("batchWait", "maximum amount of time to wait before sending a batch", default="", omitempty=True)
    batch_size: int = _field(
        "batchSize", "maximum batch size (in bytes) of logs to accumulate before sending", default=0, omitempty=True
    )
    timeout: str = _field("timeout", "maximum time to wait for a server to respond to a request", default="", omitempty=True)
    min_backoff: str = _field(
        "minBackoff", "initial backoff time for client connection between retries", default="", omitempty=True
    )
    max_backoff: str = _field(
        "maxBackoff", "maximum backoff time for client connection between retries", default="", omitempty=True
    )
    max_retries: int = _field("maxRetries", "maximum number of retries for client connections", default=0, omitempty=True)
    labels: list[str] = _field("labels", "map of record fields to be used as labels", factory=list, omitempty=True)
    static_labels: dict[str, str] = _field(
        "staticLabels", "map of common labels to set on each flow", factory=dict, omitempty=True
    )
    ignore_list: list[str] = _field(
        "ignoreList", "map of record fields to be removed from the record", factory=list, omitempty=True
    )
    client_config: dict[str, Any] = _field("clientConfig", "clientConfig", factory=dict, omitempty=True)
    timestamp_label: str = _field("timestampLabel", "label to use for time indexing", default="", omitempty=True)
    # Units of the record timestamp: "1s" for UNIX time, "1ms", or "1" for nanoseconds.
    timestamp_scale: str = _field(
        "timestampScale", "timestamp units scale (e.g. for UNIX = 1s)", default="", omitempty=True
    )

    def validate(self):
        """Raise ValueError if the configuration cannot be used."""
        if self.timestamp_scale == "":
            raise ValueError("timestampUnit must be a valid Duration > 0 (e.g. 1m, 1s or 1ms)")
        if self.url == "":
            raise ValueError("url can't be empty")
        if self.batch_size <= 0:
            raise ValueError(f"invalid batchSize: {self.batch_size}. Required > 0")


def get_write_loki_defaults():
    """Return a WriteLoki configuration holding the default settings."""
    return WriteLoki(
        url="http://loki:3100/",
        batch_wait="1s",
        batch_size=100 * 1024,
        timeout="10s",
        min_backoff="1s",
        max_backoff="5m",
        max_retries=10,
        static_labels={},
        timestamp_label="TimeReceived",
        timestamp_scale="1s",
    )


# Top level items whose doc begins with "## " become sections of the API document.
@dataclass
class API:
    prom_encode: PromEncode = _field(
        "prom",
        "## Prometheus encode API\nFollowing is the supported API format for prometheus encode:\n",
        factory=PromEncode,
    )
    kafka_encode: EncodeKafka = _field(
        "kafka",
        "## Kafka encode API\nFollowing is the supported API format for kafka encode:\n",
        factory=EncodeKafka,
    )
    ingest_collector: IngestCollector = _field(
        "collector",
        "## Ingest collector API\nFollowing is the supported API format for the netflow collector:\n",
        factory=IngestCollector,
    )
    ingest_kafka: IngestKafka = _field(
        "kafka",
        "## Ingest Kafka API\nFollowing is the supported API format for the kafka ingest:\n",
        factory=IngestKafka,
    )
    decode_aws: DecodeAws = _field(
        "aws",
        "## Aws ingest API\nFollowing is the supported API format for Aws flow entries:\n",
        factory=DecodeAws,
    )
    transform_generic: TransformGeneric = _field(
        "generic",
        "## Transform Generic API\nFollowing is the supported API format for generic transformations:\n",
        factory=TransformGeneric,
    )
    transform_network: TransformNetwork = _field(
        "network",
        "## Transform Network API\nFollowing is the supported API format for network transformations:\n",
        factory=TransformNetwork,
    )
    write_loki: WriteLoki = _field(
        "loki",
        "## Write Loki API\nFollowing is the supported API format for writing to loki:\n",
        factory=WriteLoki,
    )


def _convert(tp, value, name):
    if tp is Any:
        return value
    if is_dataclass(tp):
        return from_mapping(tp, value)
    origin = get_origin(tp)
    if origin is Union:
        inner = [arg for arg in get_args(tp) if arg is not type(None)]
        return _convert(inner[0], value, name)
    if origin is list:
        if not isinstance(value, (list, tuple)):
            raise TypeError(f"field {name}: expected a list, got {type(value).__name__}")
        (item_tp,) = get_args(tp) or (Any,)
        return [_convert(item_tp, item, name) for item in value]
    if origin is dict:
        if not isinstance(value, Mapping):
            raise TypeError(f"field {name}: expected a mapping, got {type(value).__name__}")
        key_tp, val_tp = get_args(tp) or (Any, Any)
        return {_convert(key_tp, k, name): _convert(val_tp, v, name) for k, v in value.items()}
    if tp is bool:
        if not isinstance(value, bool):
            raise TypeError(f"field {name}: expected a boolean, got {value!r}")
        return value
    if tp is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise TypeError(f"field {name}: expected an integer, got {value!r}")
    if tp is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        raise TypeError(f"field {name}: expected a number, got {value!r}")
    if tp is str:
        if not isinstance(value, str):
            raise TypeError(f"field {name}: expected a string, got {value!r}")
        return str(value)
    return value


def from_mapping(model, data):
    """Build an instance of the dataclass ``model`` from a decoded mapping.

    Keys match a field's configuration name or its attribute name, ignoring
    case and underscores. Unknown keys and null values are ignored; a value of
    the wrong type raises TypeError.
    """
    if data is None:
        return model()
    if not isinstance(data, Mapping):
        raise TypeError(f"{model.__name__}: expected a mapping, got {type(data).__name__}")
    lookup = {}
    for f in fields(model):
        lookup.setdefault(f.metadata.get(TAG_YAML, f.name).lower(), f)
        lookup.setdefault(f.name.replace("_", "").lower(), f)
    kwargs = {}
    for key, value in data.items():
        f = lookup.get(str(key).lower())
        if f is None or value is None:
            continue
        kwargs[f.name] = _convert(f.type, value, f.metadata.get(TAG_YAML, f.name))
    return model(**kwargs)


def to_mapping(obj):
    """Turn a dataclass (recursively) into plain data keyed by configuration names."""
    if is_dataclass(obj) and not isinstance(obj, type):
        result = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if f.metadata.get(TAG_OMITEMPTY) and not value:
                continue
            result[f.metadata.get(TAG_YAML, f.name)] = to_mapping(value)
        return result
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [to_mapping(item) for item in obj]
    if isinstance(obj, Mapping):
        return {key: to_mapping(value) for key, value in obj.items()}
    return obj