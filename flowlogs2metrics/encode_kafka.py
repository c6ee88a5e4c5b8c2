"""Encoder that publishes flow records to a kafka topic."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from flowlogs2metrics.api import EncodeKafka as EncodeKafkaConfig
from flowlogs2metrics.api import KafkaEncodeBalancer, from_mapping
from flowlogs2metrics.encode import Encoder

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT_SECONDS = 10
DEFAULT_WRITE_TIMEOUT_SECONDS = 10

_HTML_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}


@dataclass(frozen=True)
class KafkaMessage:
    value: bytes


class KafkaWriter(ABC):
    """Delivers messages to a kafka topic."""

    @abstractmethod
    def write_messages(self, messages):
        """Send ``messages``; raise on failure."""


@dataclass(frozen=True)
class KafkaWriterSettings:
    address: str
    topic: str
    balancer: Optional[KafkaEncodeBalancer]
    read_timeout: float
    write_timeout: float
    batch_size: int
    batch_bytes: int


def writer_settings(params):
    """Return the writer settings for an encode configuration, applying defaults."""
    balancer = next((b for b in KafkaEncodeBalancer if b.value == params.balancer), None)
    return KafkaWriterSettings(
        address=params.address,
        topic=params.topic,
        balancer=balancer,
        read_timeout=float(params.read_timeout or DEFAULT_READ_TIMEOUT_SECONDS),
        write_timeout=float(params.write_timeout or DEFAULT_WRITE_TIMEOUT_SECONDS),
        batch_size=params.batch_size,
        batch_bytes=params.batch_bytes,
    )


def _marshal(entry):
    try:
        text = json.dumps(entry, separators=(",", ":"), sort_keys=True, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as err:
        logger.error("encodeKafka: error marshalling an entry: %s", err)
        return b""
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text.encode("utf-8")


class EncodeKafka(Encoder):
    """Publishes each record as a JSON message and passes the records on."""

    def __init__(self, params, writer):
        self.params = params
        self.settings = writer_settings(params)
        self.writer = writer

    def encode(self, entries):
        entries = list(entries)
        logger.debug("entering encodeKafka Encode, #items = %d", len(entries))
        messages = [KafkaMessage(value=_marshal(entry)) for entry in entries]
        try:
            self.writer.write_messages(messages)
        except Exception as err:  # delivery failures are reported, not fatal
            logger.error("encodeKafka error: %s", err)
        return entries


def new_encode_kafka(config_json, writer):
    """Create a kafka encoder from the JSON of its configuration.

    ``writer`` is a KafkaWriter, or a callable that receives the
    KafkaWriterSettings and returns one.
    """
    try:
        params = from_mapping(EncodeKafkaConfig, json.loads(config_json))
    except (ValueError, TypeError) as err:
        raise ValueError(f"invalid kafka encode configuration: {err}") from err
    if not hasattr(writer, "write_messages") and callable(writer):
        writer = writer(writer_settings(params))
    if not hasattr(writer, "write_messages"):
        raise TypeError("writer must provide write_messages(messages)")
    return EncodeKafka(params, writer)