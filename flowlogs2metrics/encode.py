"""Encoders that prepare flow records for storage."""

import json
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Encoder(ABC):
    """Turns a batch of records into encoded items."""

    @abstractmethod
    def encode(self, entries):
        """Return the encoded form of ``entries``."""


class EncodeNone(Encoder):
    """Encoder that passes records through unchanged."""

    def encode(self, entries):
        return list(entries)


class EncodeJson(Encoder):
    """Encoder producing one compact JSON document, as bytes, per record."""

    def encode(self, entries):
        out = []
        for entry in entries:
            logger.debug("encodeJson, metric = %s", entry)
            try:
                line = json.dumps(entry, separators=(",", ":"), sort_keys=True)
            except (TypeError, ValueError) as err:
                logger.error("encodeJson Decode: error marshalling a line: %s", err)
                continue
            out.append(line.encode("utf-8"))
        return out