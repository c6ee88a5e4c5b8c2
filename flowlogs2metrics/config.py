"""Runtime options of the flow-logs pipeline."""

import json
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any

GenericMap = dict[str, Any]

_JSON_KEY = "json"


def _opt(name, default="", factory=None):
    metadata = {_JSON_KEY: name}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


@dataclass
class Health:
    port: str = _opt("Port")


@dataclass
class IngestFile:
    filename: str = _opt("Filename")


@dataclass
class Ingest:
    type: str = _opt("Type")
    file: IngestFile = _opt("File", factory=IngestFile)
    collector: str = _opt("Collector")
    kafka: str = _opt("Kafka")


@dataclass
class Decode:
    type: str = _opt("Type")
    aws: str = _opt("Aws")


@dataclass
class Extract:
    type: str = _opt("Type")
    aggregates: str = _opt("Aggregates")


@dataclass
class Encode:
    type: str = _opt("Type")
    prom: str = _opt("Prom")
    kafka: str = _opt("Kafka")


@dataclass
class Write:
    type: str = _opt("Type")
    loki: str = _opt("Loki")


@dataclass
class Pipeline:
    ingest: Ingest = _opt("Ingest", factory=Ingest)
    decode: Decode = _opt("Decode", factory=Decode)
    transform: str = _opt("Transform")
    extract: Extract = _opt("Extract", factory=Extract)
    encode: Encode = _opt("Encode", factory=Encode)
    write: Write = _opt("Write", factory=Write)


def _to_plain(obj):
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.metadata.get(_JSON_KEY, f.name): _to_plain(getattr(obj, f.name)) for f in fields(obj)}
    return obj


@dataclass
class Options:
    pipeline: Pipeline = _opt("PipeLine", factory=Pipeline)
    health: Health = _opt("Health", factory=Health)

    def to_json(self):
        """Return the options as indented JSON."""
        return json.dumps(_to_plain(self), indent=4)