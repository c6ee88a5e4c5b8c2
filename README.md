# flowlogs2metrics

Building blocks for turning network flow logs into metrics, plus a generator that turns a folder of metric definitions into a pipeline configuration, Markdown docs and Grafana jsonnet dashboards.

## Installing

```
pip install .
```

The only runtime dependency is PyYAML.

## What is in the package

- `flowlogs2metrics.api`: dataclasses describing the configuration of each stage. These include `PromEncode`, `EncodeKafka`, `IngestCollector`, `IngestKafka`, `DecodeAws`, `TransformGeneric`, `TransformNetwork` and `WriteLoki`.
  - The enums are `PromEncodeOperation`, `TransformNetworkOperation` and `KafkaEncodeBalancer`.
  - `from_mapping(model, data)` builds a dataclass from decoded JSON or YAML, and `to_mapping(obj)` turns one back into plain data.
  - `get_write_loki_defaults()` returns the default Loki settings, and `WriteLoki.validate()` raises `ValueError` when a setting cannot be used.
- `flowlogs2metrics.config`: the `Options` dataclass tree of runtime pipeline options. `Options.to_json()` dumps it.
- `flowlogs2metrics.decode`: three decoders.
  - `DecodeJson` parses JSON object lines. Numbers become floats, null values are dropped and bad lines are skipped.
  - `DecodeAws` splits whitespace-separated AWS VPC flow-log lines into named fields. Lines with the wrong number of fields are skipped. `new_decode_aws(fields_json)` builds one from a JSON `{"fields": [...]}` configuration; with an empty string it uses the default version 2 fields.
  - `DecodeNone` discards its input.
- `flowlogs2metrics.encode`: two encoders.
  - `EncodeJson` produces one compact JSON document per record, as bytes with keys sorted.
  - `EncodeNone` passes records through.
- `flowlogs2metrics.encode_prom`: the Prometheus-style encoder.
  - Metrics types are `GaugeVec`, `CounterVec` and `HistogramVec`, collected in a `MetricsRegistry` that renders the text exposition format.
  - `new_encode_prom(config_json, registry)` builds an `EncodeProm` encoder from JSON.
  - `EncodeProm.encode()` updates the metrics and returns `EntryInfo` items.
  - `EncodeProm.cleanup_expired_entries()` drops series that have been idle longer than `expirytime`, which defaults to 120 seconds.
  - `EncodeProm.start()` serves `/metrics` over HTTP and runs the expiry loop in the background. `close()` (or a `with` block) stops both.
- `flowlogs2metrics.encode_kafka`: `EncodeKafka` turns each record into a `KafkaMessage` holding its JSON. It hands the batch to a `KafkaWriter` and returns the records unchanged.
  - `new_encode_kafka(config_json, writer)` accepts either a writer or a callable.
  - A callable is given the `KafkaWriterSettings` (with default timeouts of 10 s) and must return a writer.
- `flowlogs2metrics.health`: `new_health_server(pipeline, port)` starts a `HealthServer` in a background thread on `0.0.0.0:<port>`.
  - It answers `/live` and `/ready` with 200 or 503 from the pipeline's checks. Adding `?full` to the request returns the per-check results as JSON.
  - The pipeline object must provide `is_alive()` and `is_ready()`, each returning a callable that raises when unhealthy.
  - `HealthServer.shutdown()` stops it.
- `flowlogs2metrics.confgen`, `confgen_model`, `confgen_render`: the configuration generator, described below.

## Generating configuration from metric definitions

A definition folder holds:

- a `config.yaml` with global settings: ingest collector, generic transform rules, write, prom encode and Grafana dashboards;
- one `.yaml` file per metric definition. Each must start with `#fl2m_confgen`.

Definition files are found recursively. Repeated transform rules and aggregate definitions are dropped. Two definitions using the same prometheus value key are an error.

```
flowlogs2metrics-confgenerator --srcFolder network_definitions \
    --destConfFile /tmp/flowlogs2metrics.conf.yaml \
    --destDocFile /tmp/metrics.md \
    --destGrafanaJsonnetFolder /tmp/jsonnet/
```

The command writes three outputs:

- the pipeline configuration (YAML);
- Markdown documentation of the metrics;
- one `dashboard_<name>.jsonnet` per configured dashboard.

The dashboard file name is appended directly to `--destGrafanaJsonnetFolder`, so end that value with `/`.

Options:

- `--skipWithLabels a,b` skips definitions carrying any of those labels. It may be repeated.
- `--log-level debug` shows what is being read.

Settings are taken in this order:

1. flags;
2. environment variables named `FL2M_CONFGEN_<FLAG>` (for example `FL2M_CONFGEN_SRCFOLDER`);
3. a config file given with `--config`, or else `~/.confgen.yaml`, `.yml` or `.json`;
4. the built-in defaults.

The command exits with status 1 if generation fails.

The same work is available from Python: `new_conf_gen(Options(...)).run()`.

## Documenting the API

```
flowlogs2metrics-apitodoc > api.md
```

This prints the supported configuration API of each stage as Markdown. `render_api_doc()` returns the same text.

## Using the decoders and encoders

```python
from flowlogs2metrics.decode import DecodeJson
from flowlogs2metrics.encode import EncodeJson

records = DecodeJson().decode(['{"bytes": 1234, "srcAddr": "10.1.2.3"}'])
# [{'bytes': 1234.0, 'srcAddr': '10.1.2.3'}]
lines = EncodeJson().encode(records)
# [b'{"bytes":1234.0,"srcAddr":"10.1.2.3"}']
```

## What the package does not do

- There is no pipeline runner and no command that ingests flows end to end.
- There are no collector or Kafka ingest stages, no transform or aggregate-extract stages, and no Loki writer. Their configuration classes exist in `flowlogs2metrics.api`, but nothing acts on them.
- No Kafka client is included. You supply the `KafkaWriter` that delivers messages.
- The health server reports on a pipeline object you provide.

## Running the tests

```
pip install .[test]
pytest
```