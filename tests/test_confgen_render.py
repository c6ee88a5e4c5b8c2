import yaml

from flowlogs2metrics.api import (
    GenericTransformRule,
    IngestCollector,
    NetworkTransformRule,
    PromEncode,
    PromMetricsItem,
    TransformGeneric,
)
from flowlogs2metrics.confgen_model import (
    AggregateDefinition,
    Config,
    Definition,
    GrafanaDashboard,
    Visualization,
    VisualizationGrafana,
)
from flowlogs2metrics.confgen_render import (
    CONFIG_HEADER,
    JSONNET_HEADER,
    generate_doc,
    generate_flowlogs2metrics_config,
    generate_grafana_dashboards,
    generate_operation_text,
    generate_prom_encode_text,
    generate_visualize_text,
)


def _panel(title="Test grafana title", dashboard="test", kind="graphPanel", expr="test expression"):
    return VisualizationGrafana(expr=expr, type=kind, title=title, dashboard=dashboard)


def _definition():
    return Definition(
        file_name="/defs/bandwidth_per-service.yaml",
        description="test description",
        details="test details",
        usage="test usage",
        labels=["test", "label"],
        aggregate_definitions=[
            AggregateDefinition(name="test_aggregates", by=["service"], operation="sum", record_key="test_record_key")
        ],
        prom_encode=PromEncode(metrics=[PromMetricsItem(name="test_metric", type="gauge")]),
        visualization=Visualization(type="grafana", grafana=[_panel()]),
    )


def test_visualize_text():
    text = generate_visualize_text([_panel()])
    assert text == '| **Visualized as** | "Test grafana title" on dashboard `test` |\n'


def test_visualize_text_one_row_per_panel():
    text = generate_visualize_text([_panel(), _panel(title="other"), _panel(title="third")])
    assert text.count("\n") == 3
    assert generate_visualize_text([]) == ""


def test_prom_encode_text_uses_prefix():
    text = generate_prom_encode_text([PromMetricsItem(name="test_metric", type="gauge")], "prefix_")
    assert text == "| **Exposed as** | `prefix_test_metric` of type `gauge` |\n"


def test_operation_text_with_and_without_record_key():
    with_key = generate_operation_text(
        [AggregateDefinition(name="a", by=["service", "proto"], operation="sum", record_key="bytes")]
    )
    assert "aggregate by `service, proto` and `sum` field `bytes` |" in with_key
    without_key = generate_operation_text([AggregateDefinition(name="a", by=["service"], operation="count")])
    assert without_key.endswith("and `count`  |\n")


def test_generate_doc_sections():
    doc = generate_doc([_definition()], "prefix_", "network_definitions")
    assert doc.startswith("\n> Note: this file was automatically generated")
    assert "under the network_definitions folder" in doc
    assert "### bandwidth per service\n" in doc
    assert "| **Labels** | test, label |\n" in doc
    assert "`prefix_test_metric`" in doc
    assert "|||  \n" in doc
    assert doc.endswith("\n")


def test_generate_doc_without_definitions_has_no_sections():
    doc = generate_doc([], "", "src")
    assert "###" not in doc
    assert "src folder" in doc


def test_generate_config_round_trip():
    config = Config(
        ingest_collector=IngestCollector(host_name="0.0.0.0", port=2055),
        transform_generic=TransformGeneric(rules=[GenericTransformRule(input="SrcAddr", output="srcIP")]),
        write_type="stdout",
        encode_prom=PromEncode(port=9102, prefix="fl2m_"),
    )
    rules = [NetworkTransformRule(input="dstPort", output="service", type="add_service", parameters="proto")]
    aggregates = [AggregateDefinition(name="agg", by=["service"], operation="sum", record_key="bytes")]
    metrics = [PromMetricsItem(name="m", type="gauge", value_key="agg_value", labels=["by"])]
    text = generate_flowlogs2metrics_config(config, rules, aggregates, metrics)
    assert text.splitlines()[0] == CONFIG_HEADER
    document = yaml.safe_load(text)
    assert document["log-level"] == "error"
    pipeline = document["pipeline"]
    assert pipeline["ingest"] == {"collector": {"hostname": "0.0.0.0", "port": 2055}, "type": "collector"}
    assert pipeline["decode"] == {"type": "json"}
    assert pipeline["transform"][0]["generic"]["rules"] == [{"input": "SrcAddr", "output": "srcIP"}]
    assert pipeline["transform"][1]["network"]["rules"] == [
        {"input": "dstPort", "output": "service", "type": "add_service", "parameters": "proto"}
    ]
    assert pipeline["extract"]["aggregates"] == [
        {"name": "agg", "by": ["service"], "operation": "sum", "recordKey": "bytes"}
    ]
    assert pipeline["encode"]["prom"]["port"] == 9102
    assert pipeline["encode"]["prom"]["metrics"][0]["valuekey"] == "agg_value"
    assert pipeline["write"] == {"loki": {}, "type": "stdout"}


def test_grafana_dashboards_contain_panels():
    dashboards = [GrafanaDashboard(name="test", title="Test", time_from="now", tags="['a']", schema_version="16")]
    visualizations = [
        Visualization(
            type="grafana",
            grafana=[_panel(title="graph"), _panel(title="stat", kind="singleStat"), _panel(title="bad", kind="pie")],
        )
    ]
    result = generate_grafana_dashboards(dashboards, visualizations)
    assert list(result) == ["test"]
    text = result["test"]
    assert text.startswith(JSONNET_HEADER)
    assert "schemaVersion=16," in text
    assert 'title="Test",' in text
    assert "tags=['a']," in text
    assert text.index('title="graph"') < text.index('title="stat"')
    assert "graphPanel.new(" in text
    assert "singlestat.new(" in text
    assert "bad" not in text
    assert "expr='test expression'," in text


def test_grafana_skips_unknown_dashboard_and_other_types():
    dashboards = [GrafanaDashboard(name="main")]
    visualizations = [
        Visualization(type="grafana", grafana=[_panel(title="lost", dashboard="missing")]),
        Visualization(type="other", grafana=[_panel(title="ignored", dashboard="main")]),
    ]
    result = generate_grafana_dashboards(dashboards, visualizations)
    assert ".addPanel(" not in result["main"]
    assert "missing" not in result
    assert generate_grafana_dashboards([], visualizations) == {}