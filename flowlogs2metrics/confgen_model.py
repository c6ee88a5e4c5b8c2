"""Data model of the configuration generator: options, definitions and visualizations."""

from collections.abc import Mapping
from dataclasses import dataclass, field

import yaml

from flowlogs2metrics.api import (
    TAG_YAML,
    IngestCollector,
    PromEncode,
    TransformGeneric,
    TransformNetwork,
    WriteLoki,
    from_mapping,
)


def _tagged(name, *, default="", factory=None):
    metadata = {TAG_YAML: name}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


@dataclass
class Options:
    """Where the generator reads definitions from and where it writes its outputs."""

    src_folder: str = "network_definitions"
    dest_conf_file: str = "/tmp/flowlogs2metrics.conf.yaml"
    dest_doc_file: str = "/tmp/metrics.md"
    dest_grafana_jsonnet_folder: str = "/tmp/jsonnet"
    skip_with_labels: list[str] = field(default_factory=list)


@dataclass
class AggregateDefinition:
    """One aggregation of flow records, grouped by a list of fields."""

    name: str = _tagged("name")
    by: list[str] = _tagged("by", factory=list)
    operation: str = _tagged("operation")
    record_key: str = _tagged("recordKey")

    @classmethod
    def from_dict(cls, data):
        """Build a definition from decoded configuration data."""
        return from_mapping(cls, data)


@dataclass
class VisualizationGrafana:
    """One grafana panel showing a prometheus expression."""

    expr: str = _tagged("expr")
    type: str = _tagged("type")
    title: str = _tagged("title")
    dashboard: str = _tagged("dashboard")


@dataclass
class Visualization:
    """How the metrics of a definition are visualized."""

    type: str = _tagged("type")
    grafana: list[VisualizationGrafana] = _tagged("grafana", factory=list)

    @classmethod
    def from_dict(cls, data):
        """Build a visualization from decoded configuration data."""
        return from_mapping(cls, data)


@dataclass
class GrafanaDashboard:
    """A grafana dashboard that panels are added to."""

    name: str = _tagged("name")
    title: str = _tagged("title")
    time_from: str = _tagged("time_from")
    tags: str = _tagged("tags")
    schema_version: str = _tagged("schemaVersion")


@dataclass
class Config:
    """The main configuration file of the generator."""

    description: str = ""
    ingest_collector: IngestCollector = field(default_factory=IngestCollector)
    transform_generic: TransformGeneric = field(default_factory=TransformGeneric)
    write_type: str = ""
    write_loki: WriteLoki = field(default_factory=WriteLoki)
    encode_prom: PromEncode = field(default_factory=PromEncode)
    dashboards: list[GrafanaDashboard] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        """Build a configuration from the decoded main configuration file."""
        if data is None:
            return cls()
        _require_mapping(data, "configuration")
        write = _section(data, "write")
        visualization = _section(data, "visualization")
        grafana = _section(visualization, "grafana")
        dashboards = _lookup(grafana, "dashboards")
        if dashboards is None:
            dashboards = []
        if not isinstance(dashboards, (list, tuple)):
            raise TypeError("field dashboards: expected a list")
        return cls(
            description=_scalar_text(_lookup(data, "description"), "description"),
            ingest_collector=from_mapping(IngestCollector, _lookup(_section(data, "ingest"), "collector")),
            transform_generic=from_mapping(TransformGeneric, _lookup(_section(data, "transform"), "generic")),
            write_type=_scalar_text(_lookup(write, "type"), "type"),
            write_loki=from_mapping(WriteLoki, _lookup(write, "loki")),
            encode_prom=from_mapping(PromEncode, _lookup(_section(data, "encode"), "prom")),
            dashboards=[_dashboard(item) for item in dashboards],
        )


@dataclass
class Definition:
    """A parsed network definition file."""

    file_name: str = ""
    description: str = ""
    details: str = ""
    usage: str = ""
    labels: list[str] = field(default_factory=list)
    transform_network: TransformNetwork = None
    aggregate_definitions: list[AggregateDefinition] = field(default_factory=list)
    prom_encode: PromEncode = None
    visualization: Visualization = None


def _require_mapping(value, name):
    if not isinstance(value, Mapping):
        raise TypeError(f"{name}: expected a mapping, got {type(value).__name__}")


def _lookup(data, key):
    for candidate, value in data.items():
        if str(candidate).lower() == key.lower():
            return value
    return None


def _section(data, key):
    value = _lookup(data, key)
    if value is None:
        return {}
    _require_mapping(value, key)
    return value


def _scalar_text(value, name):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        raise TypeError(f"field {name}: expected a scalar, got {type(value).__name__}")
    return str(value)


def _dashboard(data):
    if data is None:
        return GrafanaDashboard()
    _require_mapping(data, "dashboard")
    return GrafanaDashboard(
        name=_scalar_text(_lookup(data, "name"), "name"),
        title=_scalar_text(_lookup(data, "title"), "title"),
        time_from=_scalar_text(_lookup(data, "time_from"), "time_from"),
        tags=_scalar_text(_lookup(data, "tags"), "tags"),
        schema_version=_scalar_text(_lookup(data, "schemaVersion"), "schemaVersion"),
    )


def parse_config_file(file_name):
    """Read and parse the main configuration file; ValueError if it is malformed."""
    with open(file_name, encoding="utf-8") as handle:
        text = handle.read()
    try:
        return Config.from_dict(yaml.safe_load(text))
    except yaml.YAMLError as err:
        raise ValueError(f"invalid yaml in {file_name}: {err}") from err
    except TypeError as err:
        raise ValueError(f"invalid configuration in {file_name}: {err}") from err