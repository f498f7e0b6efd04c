"""Output sink module.

Sinks are append-only hand-off points for decoded records. All
confluent-kafka usage is isolated here.
"""

import json
import logging
import queue
import sys
from typing import Any, Dict, Optional, TextIO

from confluent_kafka import Producer

from config import Config, KafkaConfig
from events import METADATA_NAMESPACE, Timestamp

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Timestamp):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(record: Dict[str, Any]) -> str:
    """Serialize a record, rendering Timestamp values as ISO strings."""
    return json.dumps(record, default=_json_default)


class QueueSink:
    """Pushes records onto a thread-safe queue."""

    def __init__(self, target: Optional["queue.Queue[Dict[str, Any]]"] = None) -> None:
        self.queue = target if target is not None else queue.Queue()

    def put(self, record: Dict[str, Any]) -> None:
        self.queue.put(record)

    def close(self) -> None:
        pass


class StdoutSink:
    """Writes one JSON document per line."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def put(self, record: Dict[str, Any]) -> None:
        self._stream.write(to_json(record) + "\n")

    def close(self) -> None:
        self._stream.flush()


def build_producer_conf(kafka: KafkaConfig) -> Dict[str, str]:
    """Build the confluent-kafka Producer configuration dict.

    Args:
        kafka: Kafka connection settings

    Returns:
        Producer configuration
    """
    conf = {
        "bootstrap.servers": kafka.bootstrap_servers,
        "security.protocol": kafka.security_protocol,
    }

    # Add optional SASL/TLS configuration if provided
    if kafka.sasl_mechanism:
        conf["sasl.mechanism"] = kafka.sasl_mechanism
    if kafka.sasl_username:
        conf["sasl.username"] = kafka.sasl_username
    if kafka.sasl_password:
        conf["sasl.password"] = kafka.sasl_password
    if kafka.ssl_ca_location:
        conf["ssl.ca.location"] = kafka.ssl_ca_location

    # Warn if security protocol requires SASL but credentials are missing
    if kafka.security_protocol in ("SASL_PLAINTEXT", "SASL_SSL"):
        if not kafka.sasl_mechanism or not kafka.sasl_username:
            logger.warning(
                f"security_protocol={kafka.security_protocol} but SASL credentials "
                "are incomplete. Configure sasl_mechanism, sasl_username, sasl_password."
            )

    return conf


class KafkaSink:
    """Produces records to a Kafka topic as JSON.

    Records are keyed by ``<log_group>/<log_stream>`` so events of one
    stream land on one partition and keep their order.
    """

    def __init__(self, kafka: KafkaConfig, producer: Any = None) -> None:
        self._topic = kafka.topic
        self._producer = producer if producer is not None else Producer(
            build_producer_conf(kafka)
        )

    def _on_delivery(self, err: Any, msg: Any) -> None:
        if err is not None:
            logger.error(f"Failed to deliver record to {self._topic}: {err}")

    def put(self, record: Dict[str, Any]) -> None:
        metadata = record.get(METADATA_NAMESPACE) or {}
        key = f"{metadata.get('log_group')}/{metadata.get('log_stream')}"
        value = to_json(record).encode("utf-8")
        while True:
            try:
                self._producer.produce(
                    self._topic,
                    value=value,
                    key=key.encode("utf-8"),
                    on_delivery=self._on_delivery,
                )
                break
            except BufferError:
                # Local queue is full; block until deliveries drain it
                logger.warning(f"Producer queue full for {self._topic}, polling to drain...")
                self._producer.poll(1)
        # Serve delivery callbacks without blocking
        self._producer.poll(0)

    def close(self, timeout: float = 10.0) -> None:
        remaining = self._producer.flush(timeout)
        if remaining:
            logger.warning(f"{remaining} record(s) still undelivered after flush")


def build_sink(config: Config) -> Any:
    """Construct the configured output sink."""
    if config.output.type == "kafka":
        return KafkaSink(config.output.kafka)
    return StdoutSink()
