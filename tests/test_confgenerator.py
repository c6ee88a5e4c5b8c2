import pytest

from flowlogs2metrics.confgenerator import build_parser, main

DEFINITION = """#fl2m_confgen
description:
  test description
labels:
  - test
transform:
  rules:
    - input: testInput
      output: testOutput
      type: add_service
      parameters: proto
extract:
  aggregates:
    - name: test_aggregates
      by:
        - service
      operation: sum
      recordKey: test_record_key
encode:
  prom:
    metrics:
      - name: test_metric
        type: gauge
        valuekey: test_aggregates_value
        labels:
          - by
visualization:
  type: grafana
  grafana:
    - expr: 'test expression'
      type: graphPanel
      dashboard: test
      title: Test grafana title
"""

MAIN_CONFIG = """description: test description
ingest:
  collector:
    port: 8888
encode:
  prom:
    port: 7777
    prefix: prefix
visualization:
  grafana:
    dashboards:
      - name: test
        title: Test dashboard
        time_from: now
        tags: "['a']"
        schemaVersion: "16"
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ("SRCFOLDER", "DESTCONFFILE", "DESTDOCFILE", "DESTGRAFANAJSONNETFOLDER", "SKIPWITHLABELS"):
        monkeypatch.delenv(f"FL2M_CONFGEN_{name}", raising=False)
    src = tmp_path / "defs"
    src.mkdir()
    (src / "config.yaml").write_text(MAIN_CONFIG)
    (src / "def.yaml").write_text(DEFINITION)
    out = tmp_path / "out"
    out.mkdir()
    return src, out


def _argv(src, out):
    return [
        "--srcFolder", str(src),
        "--destConfFile", str(out / "conf.yaml"),
        "--destDocFile", str(out / "metrics.md"),
        "--destGrafanaJsonnetFolder", str(out) + "/",
    ]


def test_build_parser_splits_skip_labels():
    args = build_parser().parse_args(["--skipWithLabels", "a,b", "--skipWithLabels", "c"])
    assert args.skipWithLabels == ["a", "b", "c"]


def test_build_parser_leaves_out_absent_flags():
    args = vars(build_parser().parse_args(["--srcFolder", "x"]))
    assert args == {"srcFolder": "x"}


def test_main_generates_files(workspace):
    src, out = workspace
    assert main(_argv(src, out)) == 0
    assert "test_metric" in (out / "conf.yaml").read_text()
    assert "### def" in (out / "metrics.md").read_text()
    assert "Test grafana title" in (out / "dashboard_test.jsonnet").read_text()


def test_main_missing_source_fails(workspace, tmp_path):
    _, out = workspace
    assert main(_argv(tmp_path / "missing", out)) == 1
    assert not (out / "conf.yaml").exists()


def test_main_skip_labels(workspace):
    src, out = workspace
    assert main(_argv(src, out) + ["--skipWithLabels", "test"]) == 0
    assert "test_metric" not in (out / "conf.yaml").read_text()


def test_main_environment_sets_source(workspace, monkeypatch):
    src, out = workspace
    monkeypatch.setenv("FL2M_CONFGEN_SRCFOLDER", str(src))
    argv = [
        "--destConfFile", str(out / "conf.yaml"),
        "--destDocFile", str(out / "metrics.md"),
        "--destGrafanaJsonnetFolder", str(out) + "/",
    ]
    assert main(argv) == 0
    assert (out / "conf.yaml").is_file()


def test_main_config_file_values(workspace, tmp_path):
    src, out = workspace
    settings = tmp_path / "settings.yaml"
    settings.write_text(f"destDocFile: {out / 'from_file.md'}\n")
    argv = [
        "--config", str(settings),
        "--srcFolder", str(src),
        "--destConfFile", str(out / "conf.yaml"),
        "--destGrafanaJsonnetFolder", str(out) + "/",
    ]
    assert main(argv) == 0
    assert (out / "from_file.md").is_file()
    assert not (out / "metrics.md").exists()