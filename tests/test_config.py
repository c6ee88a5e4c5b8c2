import json

from flowlogs2metrics.config import Health, Ingest, IngestFile, Options, Pipeline


def test_to_json_top_level_keys():
    data = json.loads(Options().to_json())
    assert set(data) == {"PipeLine", "Health"}
    assert set(data["PipeLine"]) == {"Ingest", "Decode", "Transform", "Extract", "Encode", "Write"}


def test_to_json_carries_values():
    options = Options(
        pipeline=Pipeline(ingest=Ingest(type="file", file=IngestFile(filename="flows.log"))),
        health=Health(port="8080"),
    )
    data = json.loads(options.to_json())
    assert data["PipeLine"]["Ingest"]["Type"] == "file"
    assert data["PipeLine"]["Ingest"]["File"]["Filename"] == "flows.log"
    assert data["Health"]["Port"] == "8080"


def test_to_json_indents_by_four_spaces():
    lines = Options().to_json().splitlines()
    assert lines[0] == "{"
    assert lines[1].startswith('    "PipeLine"')


def test_defaults_are_independent():
    first = Options()
    second = Options()
    first.pipeline.decode.type = "json"
    assert second.pipeline.decode.type == ""
    assert json.loads(second.to_json())["PipeLine"]["Decode"]["Type"] == ""