"""Configuration loading and validation."""

import os
import tempfile
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field, fields

from domain.exceptions import ConfigurationError
from shared.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PipelineSettings:
    """Runtime settings for ingestion, queueing and processing."""

    # Deployment
    region: str = "us-east-1"
    project: Optional[str] = None
    branch: str = ""

    # Collaborators
    queue_url: Optional[str] = None
    status_table: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    # Storage
    upload_bucket: Optional[str] = None
    output_bucket: Optional[str] = None
    allowed_buckets: List[str] = field(default_factory=list)

    # Processing
    default_template_id: Optional[str] = None
    max_batch_size: int = 10
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    # Webhooks
    webhook_max_retries: int = 3
    webhook_timeout: float = 30.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.allowed_buckets, str):
            self.allowed_buckets = _split_list(self.allowed_buckets)
        self.temp_dir = Path(self.temp_dir)
        self._validate()

    def _validate(self):
        """Validate configuration values."""
        if self.max_batch_size < 1:
            raise ConfigurationError(f"max_batch_size must be at least 1, got: {self.max_batch_size}")

        if self.webhook_max_retries < 0:
            raise ConfigurationError(f"webhook_max_retries cannot be negative, got: {self.webhook_max_retries}")

        if self.webhook_timeout <= 0:
            raise ConfigurationError(f"webhook_timeout must be positive, got: {self.webhook_timeout}")

    @property
    def input_buckets(self) -> List[str]:
        """Buckets jobs may read from: the explicit list, or the upload bucket alone."""
        if self.allowed_buckets:
            return list(self.allowed_buckets)
        return [self.upload_bucket] if self.upload_bucket else []

    @property
    def is_fifo_queue(self) -> bool:
        return bool(self.queue_url and self.queue_url.endswith(".fifo"))


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class ConfigLoader:
    """Loads settings from an optional YAML file, then environment variables."""

    ENV_VARS = {
        "region": ("AWS_REGION", "AWS_DEFAULT_REGION"),
        "project": ("TRANSFLOW_PROJECT",),
        "branch": ("TRANSFLOW_BRANCH",),
        "queue_url": ("SQS_QUEUE_URL",),
        "status_table": ("DYNAMODB_TABLE",),
        "s3_endpoint_url": ("S3_ENDPOINT_URL",),
        "upload_bucket": ("UPLOAD_BUCKET", "TMP_BUCKET"),
        "output_bucket": ("OUTPUT_BUCKET",),
        "allowed_buckets": ("ALLOWED_BUCKETS",),
        "default_template_id": ("DEFAULT_TEMPLATE_ID",),
        "max_batch_size": ("MAX_BATCH_SIZE",),
        "temp_dir": ("TMP_DIR", "TEMP_DIR"),
        "webhook_max_retries": ("WEBHOOK_MAX_RETRIES",),
        "webhook_timeout": ("WEBHOOK_TIMEOUT",),
    }

    INT_FIELDS = {"max_batch_size", "webhook_max_retries"}
    FLOAT_FIELDS = {"webhook_timeout"}

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize config loader.

        Args:
            config_path: Optional path to YAML config file
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_path = config_path
        self._environ = os.environ if environ is None else environ
        self._logger = get_logger(__name__)

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> PipelineSettings:
        """
        Load settings. Precedence: overrides > environment > YAML > defaults.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config_dict: Dict[str, Any] = {}

        if self.config_path is not None:
            config_dict.update(self._load_yaml(self.config_path))

        config_dict.update(self._load_from_env())

        if overrides:
            config_dict.update({k: v for k, v in overrides.items() if v is not None})

        known = {f.name for f in fields(PipelineSettings)}
        unknown = sorted(set(config_dict) - known)
        if unknown:
            self._logger.warning(f"Ignoring unknown settings: {', '.join(unknown)}")

        try:
            return PipelineSettings(**{k: v for k, v in config_dict.items() if k in known})
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        self._logger.info(f"Loading config from {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config: Dict[str, Any] = {}

        for name, variables in self.ENV_VARS.items():
            raw = next((self._environ[v] for v in variables if self._environ.get(v)), None)
            if raw is None:
                continue

            if name in self.INT_FIELDS:
                try:
                    env_config[name] = int(raw)
                except ValueError:
                    raise ConfigurationError(f"Invalid integer for {variables[0]}: {raw}")
            elif name in self.FLOAT_FIELDS:
                try:
                    env_config[name] = float(raw)
                except ValueError:
                    raise ConfigurationError(f"Invalid number for {variables[0]}: {raw}")
            elif name == "allowed_buckets":
                env_config[name] = _split_list(raw)
            elif name == "temp_dir":
                env_config[name] = Path(raw)
            else:
                env_config[name] = raw

        return env_config
