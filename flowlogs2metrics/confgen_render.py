"""Rendering of the generator outputs: metrics doc, pipeline config and grafana jsonnet."""

import logging

import yaml

from flowlogs2metrics.api import to_mapping

logger = logging.getLogger(__name__)

TYPE_GRAFANA = "grafana"
PANEL_TYPE_GRAPH = "graphPanel"
PANEL_TYPE_SINGLE_STAT = "singleStat"

CONFIG_HEADER = "# This file was generated automatically by flowlogs2metrics confgenerator"

JSONNET_HEADER = """
local grafana = import 'grafana.libsonnet';
local dashboard = grafana.dashboard;
local row = grafana.row;
local singlestat = grafana.singlestat;
local graphPanel = grafana.graphPanel;
local heatmapPanel = grafana.heatmapPanel;
local table = grafana.table;
local prometheus = grafana.prometheus;
local template = grafana.template;
"""

_DOC_HEADER = (
    "\n"
    '> Note: this file was automatically generated, to update execute "make generate-configuration"  \n'
    "> Note: the data was generated from network definitions under the {src_folder} folder  \n"
    "  \n"
    "# flowlogs2metrics Metrics  \n"
    "  \n"
    "Each table below provides documentation for an exported flowlogs2metrics metric. \n"
    "The documentation describes the metric, the collected information from network flow-logs\n"
    "and the transformation to generate the exported metric.\n"
    "  \n"
    "  \n"
    "\n"
    "\t"
)

_DOC_SECTION = (
    "\n"
    "### {name}\n"
    "| **Description** | {description} | \n"
    "|:---|:---|\n"
    "| **Details** | {details} | \n"
    "| **Usage** | {usage} | \n"
    "| **Labels** | {labels} |\n"
    "{operation}{expose}{visualize}|||  \n"
    "\n"
)


def generate_visualize_text(panels):
    """Return the doc rows describing where a metric is visualized."""
    return "".join(
        f'| **Visualized as** | "{panel.title}" on dashboard `{panel.dashboard}` |\n' for panel in panels
    )


def generate_prom_encode_text(metrics, prefix):
    """Return the doc rows describing how a metric is exposed."""
    return "".join(
        f"| **Exposed as** | `{prefix}{metric.name}` of type `{metric.type}` |\n" for metric in metrics
    )


def generate_operation_text(definitions):
    """Return the doc rows describing the aggregations of a metric."""
    rows = []
    for definition in definitions:
        by = ", ".join(definition.by)
        record_key = f"field `{definition.record_key}`" if definition.record_key else ""
        rows.append(f"| **Operation** | aggregate by `{by}` and `{definition.operation}` {record_key} |\n")
    return "".join(rows)


def _definition_name(file_name):
    stem = file_name.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    dot = stem.rfind(".")
    if dot >= 0:
        stem = stem[:dot]
    return stem.replace("-", " ").replace("_", " ")


def generate_doc(definitions, prom_prefix, src_folder):
    """Return the markdown document describing every definition."""
    sections = []
    for definition in definitions:
        prom_metrics = definition.prom_encode.metrics if definition.prom_encode is not None else []
        panels = definition.visualization.grafana if definition.visualization is not None else []
        sections.append(
            _DOC_SECTION.format(
                name=_definition_name(definition.file_name),
                description=definition.description,
                details=definition.details,
                usage=definition.usage,
                labels=", ".join(definition.labels),
                operation=generate_operation_text(definition.aggregate_definitions or []),
                expose=generate_prom_encode_text(prom_metrics, prom_prefix),
                visualize=generate_visualize_text(panels),
            )
        )
    header = _DOC_HEADER.format(src_folder=src_folder)
    return f"{header}\n{''.join(sections)}\n"


def _pipeline_document(config, transform_rules, aggregate_definitions, prom_metrics):
    return {
        "log-level": "error",
        "pipeline": {
            "decode": {"type": "json"},
            "encode": {
                "prom": {
                    "metrics": to_mapping(list(prom_metrics)),
                    "port": config.encode_prom.port,
                    "prefix": config.encode_prom.prefix,
                },
                "type": "prom",
            },
            "extract": {
                "aggregates": to_mapping(list(aggregate_definitions)),
                "type": "aggregates",
            },
            "ingest": {
                "collector": {
                    "hostname": config.ingest_collector.host_name,
                    "port": config.ingest_collector.port,
                },
                "type": "collector",
            },
            "transform": [
                {"generic": {"rules": to_mapping(config.transform_generic.rules)}, "type": "generic"},
                {"network": {"rules": to_mapping(list(transform_rules))}, "type": "network"},
            ],
            "write": {
                "loki": to_mapping(config.write_loki),
                "type": config.write_type,
            },
        },
    }


def generate_flowlogs2metrics_config(config, transform_rules, aggregate_definitions, prom_metrics):
    """Return the text of the pipeline configuration file."""
    document = _pipeline_document(config, transform_rules, aggregate_definitions, prom_metrics)
    body = yaml.safe_dump(document, sort_keys=False, default_flow_style=False)
    return f"{CONFIG_HEADER}\n{body}\n"


def _dashboard_header(dashboard):
    return (
        "\n"
        "dashboard.new(\n"
        f"  schemaVersion={dashboard.schema_version},\n"
        f'  title="{dashboard.title}",\n'
        f'  time_from="{dashboard.time_from}",\n'
        f"  tags={dashboard.tags},\n"
        ")"
    )


def _panel(constructor, panel, width, height):
    return (
        "\n"
        ".addPanel(\n"
        f"  {constructor}.new(\n"
        "    datasource='prometheus',\n"
        f'    title="{panel.title}",\n'
        "  )\n"
        "  .addTarget(\n"
        "    prometheus.target(\n"
        f"      expr='{panel.expr}',\n"
        "    )\n"
        "  ), gridPos={\n"
        "    x: 0,\n"
        "    y: 0,\n"
        f"    w: {width},\n"
        f"    h: {height},\n"
        "  }\n"
        ")"
    )


def _render_panel(panel):
    if panel.type == PANEL_TYPE_GRAPH:
        return _panel("graphPanel", panel, 25, 20)
    if panel.type == PANEL_TYPE_SINGLE_STAT:
        return _panel("singlestat", panel, 5, 5)
    return None


def generate_grafana_dashboards(dashboards, visualizations):
    """Return the jsonnet text of every dashboard, keyed by dashboard name."""
    headers = {dashboard.name: _dashboard_header(dashboard) for dashboard in dashboards}
    panels = {name: [] for name in headers}
    for visualization in visualizations:
        if visualization.type != TYPE_GRAFANA:
            logger.info("skipping definition of type %s", visualization.type)
            continue
        for panel in visualization.grafana:
            text = _render_panel(panel)
            if text is None:
                logger.info("unsupported panel type %s", panel.type)
                continue
            if panel.dashboard not in panels:
                logger.info("can't find dashboard %s, skipping adding panel %s", panel.dashboard, panel.title)
                continue
            panels[panel.dashboard].append(text)
    return {name: JSONNET_HEADER + header + "".join(panels[name]) for name, header in headers.items()}