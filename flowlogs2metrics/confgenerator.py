"""Command that generates configuration and docs from metric definitions."""

import argparse
import json
import logging
import os
from collections.abc import Mapping

import yaml

from flowlogs2metrics.confgen import new_conf_gen
from flowlogs2metrics.confgen_model import Options

logger = logging.getLogger(__name__)

ENV_PREFIX = "FL2M_CONFGEN"
DEFAULT_CONFIG_NAME = ".confgen"
_CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")

_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}

# flag name -> (Options attribute or None, default)
_FLAGS = {
    "log-level": (None, "error"),
    "srcFolder": ("src_folder", "network_definitions"),
    "destConfFile": ("dest_conf_file", "/tmp/flowlogs2metrics.conf.yaml"),
    "destDocFile": ("dest_doc_file", "/tmp/metrics.md"),
    "destGrafanaJsonnetFolder": ("dest_grafana_jsonnet_folder", "/tmp/jsonnet"),
    "skipWithLabels": ("skip_with_labels", None),
}


def _split_csv(text):
    return [item.strip() for item in text.split(",") if item.strip()]


def build_parser():
    """Return the command line parser; absent flags are left out of the result."""
    parser = argparse.ArgumentParser(
        prog="confgenerator",
        description="Generate configuration and docs from metric definitions",
        argument_default=argparse.SUPPRESS,
    )
    parser.add_argument("--config", help=f"config file (default is $HOME/{DEFAULT_CONFIG_NAME})")
    parser.add_argument("--log-level", dest="log-level", help="Log level: debug, info, warning, error")
    parser.add_argument("--srcFolder", dest="srcFolder", help="source folder")
    parser.add_argument("--destConfFile", dest="destConfFile", help="destination configuration file")
    parser.add_argument("--destDocFile", dest="destDocFile", help="destination documentation file (.md)")
    parser.add_argument(
        "--destGrafanaJsonnetFolder", dest="destGrafanaJsonnetFolder", help="destination grafana jsonnet folder"
    )
    parser.add_argument(
        "--skipWithLabels",
        dest="skipWithLabels",
        type=_split_csv,
        action="extend",
        help="Skip definitions with Labels (comma separated, may repeat)",
    )
    return parser


def _find_config_file(config_path):
    if config_path:
        return config_path if os.path.isfile(config_path) else None
    home = os.path.expanduser("~")
    for ext in _CONFIG_EXTENSIONS:
        candidate = os.path.join(home, DEFAULT_CONFIG_NAME + ext)
        if os.path.isfile(candidate):
            return candidate
    return None


def _read_config_file(path):
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle.read())
    except (OSError, yaml.YAMLError):
        return {}
    if not isinstance(data, Mapping):
        return {}
    return {str(key).lower(): value for key, value in data.items()}


def _as_text(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(value)
    return str(value)


def _as_list(value):
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return _split_csv(_as_text(value))


def _resolve(args, file_values):
    """Combine flags, environment, config file and defaults, in that order."""
    values = {}
    for name, (_, default) in _FLAGS.items():
        if name in args:
            values[name] = args[name]
            continue
        env_value = os.environ.get(f"{ENV_PREFIX}_{name.upper()}")
        if env_value is not None:
            values[name] = env_value
        elif name.lower() in file_values and file_values[name.lower()] is not None:
            values[name] = file_values[name.lower()]
        else:
            values[name] = default
    options = Options()
    for name, (attribute, _) in _FLAGS.items():
        if attribute is None:
            continue
        value = values[name]
        if attribute == "skip_with_labels":
            setattr(options, attribute, _as_list(value) if value is not None else [])
        else:
            setattr(options, attribute, _as_text(value))
    return options, _as_text(values["log-level"])


def _init_logger(level_name):
    level = _LEVELS.get(level_name.strip().lower(), logging.ERROR)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s", force=True)


def _dump_options(options):
    document = {
        "DestConfFile": options.dest_conf_file,
        "DestDocFile": options.dest_doc_file,
        "DestGrafanaJsonnetFolder": options.dest_grafana_jsonnet_folder,
        "SrcFolder": options.src_folder,
        "SkipWithLabels": options.skip_with_labels or None,
    }
    logger.info("configuration:\n%s\n", json.dumps(document, indent="\t"))


def main(argv=None):
    """Run the generator; return the process exit status."""
    parser = build_parser()
    args = vars(parser.parse_args(argv))
    config_file = _find_config_file(args.get("config", ""))
    file_values = {}
    if config_file is not None:
        file_values = _read_config_file(config_file)
        print("Using config file:", config_file)
    options, log_level = _resolve(args, file_values)
    _init_logger(log_level)

    logger.info("starting %s", parser.prog)
    _dump_options(options)
    try:
        new_conf_gen(options).run()
    except (OSError, ValueError, TypeError, RuntimeError) as err:
        logger.error("failed to run the configuration generator: %s", err)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())