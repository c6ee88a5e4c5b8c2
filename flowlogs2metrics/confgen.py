"""Generation of the pipeline configuration, docs and dashboards from network definitions."""

import logging
import os
from collections.abc import Mapping

import yaml

from flowlogs2metrics.api import PromEncode, TransformNetwork, from_mapping
from flowlogs2metrics.confgen_model import (
    AggregateDefinition,
    Definition,
    Options,
    Visualization,
    parse_config_file,
)
from flowlogs2metrics.confgen_render import (
    generate_doc,
    generate_flowlogs2metrics_config,
    generate_grafana_dashboards,
)

logger = logging.getLogger(__name__)

DEFINITION_EXT = ".yaml"
DEFINITION_HEADER = "#fl2m_confgen"
CONFIG_FILE_NAME = "config.yaml"

_PARSE_ERRORS = (OSError, ValueError, TypeError, KeyError)


def _section(data, key):
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"section {key}: expected a mapping, got {type(value).__name__}")
    return dict(value)


def _text(value):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        raise ValueError(f"expected a scalar, got {type(value).__name__}")
    return str(value)


def _labels(value):
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValueError("labels: expected a list")
    return [_text(item) for item in value]


class ConfGen:
    """Collects network definitions and writes the outputs they describe."""

    def __init__(self, options=None):
        self.options = options if options is not None else Options()
        self.config = None
        self.transform_rules = []
        self.aggregate_definitions = []
        self.prom_metrics = []
        self.visualizations = []
        self.definitions = []

    def run(self):
        """Parse every definition under the source folder and write all outputs."""
        self.config = parse_config_file(os.path.join(self.options.src_folder, CONFIG_FILE_NAME))

        for definition_file in self.get_definition_files(self.options.src_folder):
            try:
                self.parse_file(definition_file)
            except _PARSE_ERRORS as err:
                logger.debug("parse_file %s err: %s", definition_file, err)
                continue

        self.dedupe()

        config_text = generate_flowlogs2metrics_config(
            self.config, self.transform_rules, self.aggregate_definitions, self.prom_metrics
        )
        with open(self.options.dest_conf_file, "w", encoding="utf-8") as handle:
            handle.write(config_text)

        doc_text = generate_doc(self.definitions, self.config.encode_prom.prefix, self.options.src_folder)
        with open(self.options.dest_doc_file, "w", encoding="utf-8") as handle:
            handle.write(doc_text)

        dashboards = generate_grafana_dashboards(self.config.dashboards, self.visualizations)
        for name, text in dashboards.items():
            file_name = f"{self.options.dest_grafana_jsonnet_folder}dashboard_{name}.jsonnet"
            with open(file_name, "w", encoding="utf-8") as handle:
                handle.write(text)

    def check_header(self, file_name):
        """Raise ValueError unless the file starts with the definition header."""
        expected = DEFINITION_HEADER.encode("utf-8")
        with open(file_name, "rb") as handle:
            header = handle.read(len(expected))
        if header != expected:
            logger.debug("Wrong header file: %s", file_name)
            raise ValueError(f"wrong header in {file_name}")

    def parse_file(self, file_name):
        """Parse one definition file and return the definition it holds."""
        self.check_header(file_name)
        with open(file_name, encoding="utf-8") as handle:
            text = handle.read()
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as err:
            raise ValueError(f"invalid yaml in {file_name}: {err}") from err
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError(f"{file_name}: expected a mapping at top level")

        labels = _labels(data.get("labels"))
        for skip_label in self.options.skip_with_labels:
            if skip_label in labels:
                raise ValueError(f"skipping definition {file_name} due to skip label {skip_label}")

        definition = Definition(
            file_name=file_name,
            description=_text(data.get("description")),
            details=_text(data.get("details")),
            usage=_text(data.get("usage")),
            labels=labels,
        )
        definition.transform_network = self.parse_transform(_section(data, "transform"))
        definition.aggregate_definitions = self.parse_extract(_section(data, "extract"))
        definition.prom_encode = self.parse_encode(_section(data, "encode"))
        definition.visualization = self.parse_visualization(_section(data, "visualization"))

        self.definitions.append(definition)
        return definition

    def get_definition_files(self, root_path):
        """Return the definition files under ``root_path`` in walk order."""
        files = []
        for dir_path, dir_names, file_names in os.walk(root_path):
            dir_names.sort()
            for name in sorted(file_names):
                path = os.path.join(dir_path, name)
                if os.path.islink(path) or not os.path.isfile(path):
                    continue
                if os.path.splitext(name)[1] == DEFINITION_EXT and name != CONFIG_FILE_NAME:
                    files.append(path)
        return files

    def parse_transform(self, transform):
        """Parse the transform section and collect its network rules."""
        network = from_mapping(TransformNetwork, dict(transform or {}))
        self.transform_rules.extend(network.rules)
        return network

    def parse_extract(self, extract):
        """Parse the extract section and collect its aggregate definitions."""
        aggregates = (extract or {}).get("aggregates")
        if aggregates is None:
            aggregates = []
        if not isinstance(aggregates, (list, tuple)):
            raise ValueError("aggregates: expected a list")
        definitions = [AggregateDefinition.from_dict(item or {}) for item in aggregates]
        self.aggregate_definitions.extend(definitions)
        return definitions

    def parse_encode(self, encode):
        """Parse the prometheus encode section and collect its metrics.

        Raises RuntimeError when a value key is already used by another metric.
        """
        prom_data = (encode or {}).get("prom")
        prom = from_mapping(PromEncode, dict(prom_data or {}))
        for existing in self.prom_metrics:
            for new in prom.metrics:
                if existing.value_key == new.value_key:
                    raise RuntimeError(
                        f"error in parse_encode: ValueKey {new.value_key} overlaps, metric encoding ignored"
                    )
        self.prom_metrics.extend(prom.metrics)
        return prom

    def parse_visualization(self, visualization):
        """Parse the visualization section and collect it."""
        result = Visualization.from_dict(dict(visualization or {}))
        self.visualizations.append(result)
        return result

    def dedupe(self):
        """Drop repeated transform rules and aggregate definitions."""
        self.transform_rules = dedupe_network_transform_rules(self.transform_rules)
        self.aggregate_definitions = dedupe_aggregate_definitions(self.aggregate_definitions)


def _dedupe(items, kind):
    unique = []
    for index, item in enumerate(items):
        if item in unique:
            logger.debug("Remove duplicate %s %s at index %d", kind, item, index)
            continue
        unique.append(item)
    return unique


def dedupe_network_transform_rules(rules):
    """Return the rules without repeats, keeping the first occurrence."""
    return _dedupe(rules, "NetworkTransformRule")


def dedupe_aggregate_definitions(definitions):
    """Return the definitions without repeats, keeping the first occurrence."""
    return _dedupe(definitions, "AggregateDefinition")


def new_conf_gen(options=None):
    """Create a configuration generator."""
    return ConfGen(options)