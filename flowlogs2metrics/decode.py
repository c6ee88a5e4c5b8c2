"""Decoders that turn raw input lines into flow records."""

import json
import logging
from abc import ABC, abstractmethod

from flowlogs2metrics.api import DecodeAws as DecodeAwsConfig
from flowlogs2metrics.api import from_mapping

logger = logging.getLogger(__name__)

DEFAULT_KEYS = (
    "version",
    "account-id",
    "interface-id",
    "srcaddr",
    "dstaddr",
    "srcport",
    "dstport",
    "protocol",
    "packets",
    "bytes",
    "start",
    "end",
    "action",
    "log-status",
)


class Decoder(ABC):
    """Turns a batch of raw lines into a list of records."""

    @abstractmethod
    def decode(self, lines):
        """Return the records decoded from ``lines``."""


class DecodeNone(Decoder):
    """Decoder that discards its input."""

    def decode(self, lines):
        logger.debug("Decode none, in = %s", lines)
        return []


class DecodeAws(Decoder):
    """Decoder of whitespace separated AWS flow log lines."""

    def __init__(self, key_tags=DEFAULT_KEYS):
        self.key_tags = list(key_tags)

    def decode(self, lines):
        out = []
        for line_num, line in enumerate(lines, start=1):
            values = line.split()
            if len(values) != len(self.key_tags):
                logger.error("decodeAws Decode: wrong number of fields in line %d", line_num)
                continue
            out.append(dict(zip(self.key_tags, values)))
        return out


class DecodeJson(Decoder):
    """Decoder of JSON object lines; numbers become floats and nulls are dropped."""

    def __init__(self):
        self.prev_records = []

    def decode(self, lines):
        out = []
        for line in lines:
            logger.debug("decodeJson: line = %s", line)
            try:
                decoded = json.loads(line, parse_int=float)
            except (ValueError, TypeError) as err:
                logger.error("decodeJson Decode: error unmarshalling a line: %s", err)
                continue
            if decoded is None:
                decoded = {}
            if not isinstance(decoded, dict):
                logger.error("decodeJson Decode: line is not a JSON object: %s", line)
                continue
            out.append({key: value for key, value in decoded.items() if value is not None})
        self.prev_records = lines
        return out


def new_decode_aws(fields_json=""):
    """Create an AWS decoder from the JSON of its configuration; default keys if empty."""
    if not fields_json:
        return DecodeAws()
    try:
        aws_config = from_mapping(DecodeAwsConfig, json.loads(fields_json))
    except (ValueError, TypeError) as err:
        logger.error("NewDecodeAws: error in unmarshalling fields: %s", err)
        raise ValueError(f"error in unmarshalling fields: {err}") from err
    return DecodeAws(aws_config.fields)