import pytest

from flowlogs2metrics.api import IngestCollector, PromEncode
from flowlogs2metrics.confgen_model import (
    AggregateDefinition,
    Config,
    GrafanaDashboard,
    Options,
    Visualization,
    VisualizationGrafana,
    parse_config_file,
)

TEST_CONFIG = """---
## This is the main configuration file for flowlogs2metrics. It holds
## all parameters needed for the creation of the configuration
##
description:
  test description
ingest:
  collector:
    port: 8888
encode:
  prom:
    port: 7777
    prefix: prefix
"""


def expected_config():
    return Config(
        description="test description",
        encode_prom=PromEncode(port=7777, prefix="prefix"),
        ingest_collector=IngestCollector(port=8888),
    )


def test_parse_config_file(tmp_path):
    path = tmp_path / "config"
    path.write_text(TEST_CONFIG)
    assert parse_config_file(str(path)) == expected_config()


def test_parse_config_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_config_file(str(tmp_path / "missing.yaml"))


def test_parse_config_file_bad_type(tmp_path):
    path = tmp_path / "config"
    path.write_text("ingest:\n  collector:\n    port: notanumber\n")
    with pytest.raises(ValueError):
        parse_config_file(str(path))


def test_parse_config_file_bad_yaml(tmp_path):
    path = tmp_path / "config"
    path.write_text("ingest: [unclosed\n")
    with pytest.raises(ValueError):
        parse_config_file(str(path))


def test_config_from_none_is_default():
    assert Config.from_dict(None) == Config()


def test_config_write_and_dashboards():
    data = {
        "write": {"type": "loki", "loki": {"url": "http://loki.example.com:3100/", "batchSize": 10}},
        "visualization": {
            "grafana": {
                "dashboards": [
                    {
                        "name": "details",
                        "title": "Flow-Logs to Metrics - Details",
                        "time_from": "now-15m",
                        "tags": "['flp','grafana']",
                        "schemaVersion": 16,
                    }
                ]
            }
        },
    }
    config = Config.from_dict(data)
    assert config.write_type == "loki"
    assert config.write_loki.url == "http://loki.example.com:3100/"
    assert config.write_loki.batch_size == 10
    assert config.dashboards == [
        GrafanaDashboard(
            name="details",
            title="Flow-Logs to Metrics - Details",
            time_from="now-15m",
            tags="['flp','grafana']",
            schema_version="16",
        )
    ]


def test_config_rejects_non_mapping_section():
    with pytest.raises(TypeError):
        Config.from_dict({"ingest": ["not", "a", "mapping"]})


def test_aggregate_definition_from_dict():
    definition = AggregateDefinition.from_dict(
        {"name": "test_aggregates", "by": ["service"], "operation": "sum", "recordKey": "test_record_key"}
    )
    assert definition == AggregateDefinition(
        name="test_aggregates", by=["service"], operation="sum", record_key="test_record_key"
    )


def test_aggregate_definition_bad_by():
    with pytest.raises(TypeError):
        AggregateDefinition.from_dict({"name": "n", "by": "service"})


def test_visualization_from_dict():
    visualization = Visualization.from_dict(
        {
            "type": "grafana",
            "grafana": [
                {"expr": "test expression", "type": "graphPanel", "dashboard": "test", "title": "Test grafana title"}
            ],
        }
    )
    assert visualization.type == "grafana"
    assert visualization.grafana == [
        VisualizationGrafana(expr="test expression", type="graphPanel", title="Test grafana title", dashboard="test")
    ]


def test_visualization_from_none():
    assert Visualization.from_dict(None) == Visualization()


def test_options_defaults_are_independent():
    first, second = Options(), Options()
    first.skip_with_labels.append("kubernetes")
    assert second.skip_with_labels == []
    assert first.src_folder == "network_definitions"