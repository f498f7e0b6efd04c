"""Configuration loading and validation module.

This module handles all YAML configuration loading and provides a typed
Config dataclass consumed by all other modules.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Any, Union
import yaml


START_POSITIONS = ("beginning", "end")
CODECS = ("plain", "json")
OUTPUT_TYPES = ("stdout", "kafka")


class ConfigError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


@dataclass
class AwsConfig:
    """CloudWatch Logs client configuration."""
    region: Optional[str] = None
    profile: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    endpoint_url: Optional[str] = None
    retry_limit: int = 3
    enable_client_logging: bool = False


@dataclass
class InputConfig:
    """Polling behavior configuration."""
    log_group: List[str]
    log_group_prefix: bool = False
    log_streams: List[str] = field(default_factory=list)
    ignore_unavailable: bool = False
    start_position: Union[str, int] = "beginning"
    interval: float = 60
    backoff_time: float = 0
    max_failed_runs: int = 0
    max_pages: int = 0
    sincedb_path: Optional[str] = None
    data_dir: str = "data"
    codec: str = "plain"

    @property
    def stream_mode(self) -> bool:
        """True when polling individual streams of a single log group."""
        return bool(self.log_streams)

    @property
    def identifiers(self) -> List[str]:
        """Configured unit-of-work identifiers (streams or groups/prefixes)."""
        return list(self.log_streams) if self.stream_mode else list(self.log_group)


@dataclass
class KafkaConfig:
    """Kafka connection configuration for the output sink."""
    bootstrap_servers: str
    topic: str
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: Optional[str] = None
    sasl_username: Optional[str] = None
    sasl_password: Optional[str] = None
    ssl_ca_location: Optional[str] = None


@dataclass
class OutputConfig:
    """Output sink configuration."""
    type: str = "stdout"
    kafka: Optional[KafkaConfig] = None


@dataclass
class Config:
    """Root configuration dataclass."""
    aws: AwsConfig
    input: InputConfig
    output: OutputConfig


def _get_nested(data: dict, path: str, required: bool = True, default: Any = None) -> Any:
    """Get a nested value from a dictionary using dot notation.

    Args:
        data: The dictionary to search
        path: Dot-separated path to the value (e.g., "input.log_group")
        required: If True, raises ConfigError when value is missing
        default: Default value if not required and missing

    Returns:
        The value at the path, or default if not required and missing

    Raises:
        ConfigError: If required value is missing
    """
    keys = path.split(".")
    current = data

    for key in keys:
        if not isinstance(current, dict):
            if required:
                raise ConfigError(f"Configuration path '{path}' is not a valid nested structure")
            return default
        if key not in current or current[key] is None:
            if required:
                raise ConfigError(f"Missing required configuration field: {path}")
            return default
        current = current[key]

    return current


def _validate_type(value: Any, expected_type: type, field_name: str) -> None:
    """Validate that a value is of the expected type.

    Args:
        value: The value to validate
        expected_type: The expected type
        field_name: Name of the field for error messages

    Raises:
        ConfigError: If value is not of the expected type
    """
    origin = getattr(expected_type, "__origin__", None)

    if origin is list or expected_type is list:
        if not isinstance(value, list):
            raise ConfigError(
                f"Field '{field_name}' must be a list, got {type(value).__name__}"
            )
    elif expected_type is int:
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(
                f"Field '{field_name}' must be an integer, got {type(value).__name__}"
            )
    elif expected_type is float:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ConfigError(
                f"Field '{field_name}' must be a number, got {type(value).__name__}"
            )
    elif expected_type is str:
        if not isinstance(value, str):
            raise ConfigError(
                f"Field '{field_name}' must be a string, got {type(value).__name__}"
            )
    else:
        if not isinstance(value, expected_type):
            raise ConfigError(
                f"Field '{field_name}' must be of type {expected_type.__name__}, got {type(value).__name__}"
            )


def _optional_str(data: dict, key: str, prefix: str) -> Optional[str]:
    """Read an optional string field, validating its type when present."""
    value = _get_nested(data, key, required=False, default=None)
    if value is not None:
        _validate_type(value, str, f"{prefix}.{key}")
    return value


def _string_list(value: Any, field_name: str) -> List[str]:
    """Normalize a string or list of strings into a list of strings."""
    if isinstance(value, str):
        value = [value]
    _validate_type(value, list, field_name)
    for i, item in enumerate(value):
        _validate_type(item, str, f"{field_name}[{i}]")
    return list(value)


def check_start_position(start_position: Any) -> None:
    """Validate a start position value.

    Args:
        start_position: ``beginning``, ``end`` or an integer number of seconds

    Raises:
        ConfigError: If the value is missing or not one of the accepted forms
    """
    if start_position is None:
        raise ConfigError("No start_position specified!")
    if isinstance(start_position, bool):
        raise ConfigError(
            f"start_position '{start_position}' is invalid! "
            "Must be `beginning`, `end`, or an integer."
        )
    if isinstance(start_position, int):
        return
    if isinstance(start_position, str) and start_position in START_POSITIONS:
        return
    raise ConfigError(
        f"start_position '{start_position}' is invalid! "
        "Must be `beginning`, `end`, or an integer."
    )


def check_backoff_settings(backoff_time: float, max_failed_runs: int) -> None:
    """Validate the combination of backoff_time and max_failed_runs.

    Raises:
        ConfigError: If max_failed_runs is set without backoff_time, or
            either value is negative
    """
    if max_failed_runs > 0 and backoff_time == 0:
        raise ConfigError("max_failed_runs must be used in conjunction with backoff_time!")
    if backoff_time < 0:
        raise ConfigError("backoff_time has to be a positive number!")
    if max_failed_runs < 0:
        raise ConfigError("max_failed_runs must be >= 0")


def _build_aws(data: dict) -> AwsConfig:
    aws_data = _get_nested(data, "aws", required=False, default={})
    _validate_type(aws_data, dict, "aws")

    retry_limit = _get_nested(aws_data, "retry_limit", required=False, default=3)
    _validate_type(retry_limit, int, "aws.retry_limit")
    if retry_limit < 0:
        raise ConfigError("aws.retry_limit must be >= 0")

    enable_client_logging = _get_nested(
        aws_data, "enable_client_logging", required=False, default=False
    )
    _validate_type(enable_client_logging, bool, "aws.enable_client_logging")

    return AwsConfig(
        region=_optional_str(aws_data, "region", "aws"),
        profile=_optional_str(aws_data, "profile", "aws"),
        access_key_id=_optional_str(aws_data, "access_key_id", "aws"),
        secret_access_key=_optional_str(aws_data, "secret_access_key", "aws"),
        session_token=_optional_str(aws_data, "session_token", "aws"),
        endpoint_url=_optional_str(aws_data, "endpoint_url", "aws"),
        retry_limit=retry_limit,
        enable_client_logging=enable_client_logging,
    )


def _build_input(data: dict) -> InputConfig:
    input_data = _get_nested(data, "input")
    _validate_type(input_data, dict, "input")

    log_group = _string_list(_get_nested(input_data, "log_group"), "input.log_group")
    if not log_group:
        raise ConfigError("input.log_group must name at least one log group")

    log_group_prefix = _get_nested(input_data, "log_group_prefix", required=False, default=False)
    _validate_type(log_group_prefix, bool, "input.log_group_prefix")

    log_streams = _string_list(
        _get_nested(input_data, "log_streams", required=False, default=[]),
        "input.log_streams",
    )
    if log_streams and (log_group_prefix or len(log_group) > 1):
        raise ConfigError(
            "input.log_streams requires exactly one input.log_group and no log_group_prefix"
        )

    ignore_unavailable = _get_nested(
        input_data, "ignore_unavailable", required=False, default=False
    )
    _validate_type(ignore_unavailable, bool, "input.ignore_unavailable")

    start_position = _get_nested(
        input_data, "start_position", required=False, default="beginning"
    )
    check_start_position(start_position)

    interval = _get_nested(input_data, "interval", required=False, default=60)
    _validate_type(interval, float, "input.interval")
    if interval <= 0:
        raise ConfigError("input.interval must be > 0")

    backoff_time = _get_nested(input_data, "backoff_time", required=False, default=0)
    _validate_type(backoff_time, float, "input.backoff_time")

    max_failed_runs = _get_nested(input_data, "max_failed_runs", required=False, default=0)
    _validate_type(max_failed_runs, int, "input.max_failed_runs")

    check_backoff_settings(backoff_time, max_failed_runs)

    max_pages = _get_nested(input_data, "max_pages", required=False, default=0)
    _validate_type(max_pages, int, "input.max_pages")

    data_dir = _get_nested(input_data, "data_dir", required=False, default="data")
    _validate_type(data_dir, str, "input.data_dir")

    codec = _get_nested(input_data, "codec", required=False, default="plain")
    _validate_type(codec, str, "input.codec")
    if codec not in CODECS:
        raise ConfigError(f"input.codec must be one of {', '.join(CODECS)}, got '{codec}'")

    return InputConfig(
        log_group=log_group,
        log_group_prefix=log_group_prefix,
        log_streams=log_streams,
        ignore_unavailable=ignore_unavailable,
        start_position=start_position,
        interval=interval,
        backoff_time=backoff_time,
        max_failed_runs=max_failed_runs,
        max_pages=max_pages,
        sincedb_path=_optional_str(input_data, "sincedb_path", "input"),
        data_dir=data_dir,
        codec=codec,
    )


def _build_output(data: dict) -> OutputConfig:
    output_data = _get_nested(data, "output", required=False, default={})
    _validate_type(output_data, dict, "output")

    output_type = _get_nested(output_data, "type", required=False, default="stdout")
    _validate_type(output_type, str, "output.type")
    if output_type not in OUTPUT_TYPES:
        raise ConfigError(
            f"output.type must be one of {', '.join(OUTPUT_TYPES)}, got '{output_type}'"
        )

    if output_type != "kafka":
        return OutputConfig(type=output_type)

    kafka_data = _get_nested(output_data, "kafka")
    bootstrap_servers = _get_nested(kafka_data, "bootstrap_servers")
    _validate_type(bootstrap_servers, str, "output.kafka.bootstrap_servers")

    topic = _get_nested(kafka_data, "topic")
    _validate_type(topic, str, "output.kafka.topic")

    security_protocol = _get_nested(
        kafka_data, "security_protocol", required=False, default="PLAINTEXT"
    )
    _validate_type(security_protocol, str, "output.kafka.security_protocol")

    kafka = KafkaConfig(
        bootstrap_servers=bootstrap_servers,
        topic=topic,
        security_protocol=security_protocol,
        sasl_mechanism=_optional_str(kafka_data, "sasl_mechanism", "output.kafka"),
        sasl_username=_optional_str(kafka_data, "sasl_username", "output.kafka"),
        sasl_password=_optional_str(kafka_data, "sasl_password", "output.kafka"),
        ssl_ca_location=_optional_str(kafka_data, "ssl_ca_location", "output.kafka"),
    )
    return OutputConfig(type=output_type, kafka=kafka)


def load_config(path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Config: Validated configuration object

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid
    """
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a YAML dictionary")

    return Config(
        aws=_build_aws(data),
        input=_build_input(data),
        output=_build_output(data),
    )
