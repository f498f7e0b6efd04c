"""Message payload decoding.

A codec turns the raw message text of a log event into zero or more
structured records (dicts).
"""

import json
import logging
from typing import Any, Dict, Iterator

from config import CODECS, ConfigError

logger = logging.getLogger(__name__)

JSON_PARSE_FAILURE_TAG = "_jsonparsefailure"


class PlainCodec:
    """Passes the message through untouched."""

    name = "plain"

    def decode(self, text: str) -> Iterator[Dict[str, Any]]:
        yield {"message": text}


class JsonCodec:
    """Parses the message as a JSON document.

    Invalid JSON is not an error: the raw text is kept and the record is
    tagged so downstream consumers can find it.
    """

    name = "json"

    def decode(self, text: str) -> Iterator[Dict[str, Any]]:
        try:
            value = json.loads(text)
        except ValueError as e:
            logger.debug(f"JSON parse failure, passing message through: {e}")
            yield {"message": text, "tags": [JSON_PARSE_FAILURE_TAG]}
            return

        if isinstance(value, dict):
            yield value
        else:
            yield {"message": value}


def get_codec(name: str) -> Any:
    """Return a codec instance by name.

    Raises:
        ConfigError: If the codec name is unknown
    """
    if name == "plain":
        return PlainCodec()
    if name == "json":
        return JsonCodec()
    raise ConfigError(f"Unknown codec '{name}', expected one of {', '.join(CODECS)}")
