# config/app_config.py
"""
Application Configuration for Memwatch
Monitoring tunables with environment overrides
"""

import os
import logging
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

@dataclass
class AppConfig:
    """Application configuration with validation and defaults - portable paths"""

    # === CORE DIRECTORIES (portable, relative to project root) ===
    base_dir: Path = field(init=False)
    data_dir: Path = field(init=False)
    logs_dir: Path = field(init=False)

    # === SAMPLING ===
    sampling_interval: float = 5.0  # seconds between ticks
    sample_history_size: int = 100
    heap_probe: str = "psutil"  # "psutil" or "none"
    heap_limit_mb: float = 0.0  # 0 = use physical memory as the ceiling

    # === POLICY THRESHOLDS (percent of limit) ===
    memory_warning_threshold: float = 80.0
    memory_critical_threshold: float = 95.0
    gc_trigger_threshold: float = 85.0

    # === RETENTION ===
    cache_entry_ttl: float = 3600.0  # 1 hour
    component_idle_ttl: float = 600.0  # 10 minutes
    component_cleanup_age: float = 300.0  # 5 minutes, advisory candidates
    finding_retention: float = 3600.0  # 1 hour
    image_cache_keep: int = 20

    # === REPORTING ===
    report_poll_interval: float = 5.0
    max_leaks_displayed: int = 50

    # === REQUEST MONITOR / HTTP CACHE ===
    slow_request_ms: float = 1000.0
    max_request_metrics: int = 10000
    cache_max_entries: int = 5000
    cache_default_ttl: float = 300.0

    # === SERVER ===
    host: str = "0.0.0.0"
    port: int = 8000
    admin_token: Optional[str] = None
    log_level: str = "INFO"
    monitoring_enabled: bool = True
    create_directories: bool = True

    def __post_init__(self):
        self.base_dir = Path(__file__).parent.parent.resolve()
        self.data_dir = Path(os.getenv("MEMWATCH_DATA_DIR", self.base_dir / "data"))
        self.logs_dir = self.data_dir / "logs"

        self._load_environment_overrides()
        self._validate_settings()
        if self.create_directories:
            self._validate_and_create_directories()

    def _validate_and_create_directories(self):
        for directory in [self.data_dir, self.logs_dir]:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                logger.warning(f"Failed to create directory {directory}: {e}")

    def _load_environment_overrides(self):
        env_mappings = {
            'MEMWATCH_SAMPLING_INTERVAL': ('sampling_interval', float),
            'MEMWATCH_HISTORY_SIZE': ('sample_history_size', int),
            'MEMWATCH_HEAP_PROBE': ('heap_probe', str),
            'MEMWATCH_HEAP_LIMIT_MB': ('heap_limit_mb', float),
            'MEMWATCH_WARNING_THRESHOLD': ('memory_warning_threshold', float),
            'MEMWATCH_CRITICAL_THRESHOLD': ('memory_critical_threshold', float),
            'MEMWATCH_GC_THRESHOLD': ('gc_trigger_threshold', float),
            'MEMWATCH_CACHE_TTL': ('cache_entry_ttl', float),
            'MEMWATCH_COMPONENT_IDLE_TTL': ('component_idle_ttl', float),
            'MEMWATCH_FINDING_RETENTION': ('finding_retention', float),
            'MEMWATCH_POLL_INTERVAL': ('report_poll_interval', float),
            'MEMWATCH_ADMIN_TOKEN': ('admin_token', str),
            'MEMWATCH_LOG_LEVEL': ('log_level', str),
            'MEMWATCH_HOST': ('host', str),
            'MEMWATCH_PORT': ('port', int),
            'MEMWATCH_MONITORING': ('monitoring_enabled', bool),
        }
        for env_key, (attr_name, caster) in env_mappings.items():
            env_value = os.getenv(env_key)
            if env_value:
                try:
                    if caster is bool:
                        setattr(self, attr_name, env_value.lower() in ['true', '1', 'yes'])
                    else:
                        setattr(self, attr_name, caster(env_value))
                except (ValueError, TypeError) as e:
                    logger.warning(f"Invalid environment value for {env_key}: {env_value} ({e})")

    def _validate_settings(self):
        if self.heap_probe not in ["psutil", "none"]:
            logger.warning(f"Heap probe {self.heap_probe} not supported, falling back to 'none'")
            self.heap_probe = "none"
        if self.sample_history_size < 5:
            logger.warning("sample_history_size below 5 makes trend detection impossible, using 5")
            self.sample_history_size = 5
        if not (0 < self.memory_warning_threshold <= self.memory_critical_threshold <= 100):
            logger.warning(
                f"Inconsistent memory thresholds (warning={self.memory_warning_threshold}, "
                f"critical={self.memory_critical_threshold}), restoring defaults"
            )
            self.memory_warning_threshold = 80.0
            self.memory_critical_threshold = 95.0
        if self.sampling_interval <= 0:
            logger.warning(f"Invalid sampling interval {self.sampling_interval}, using 5.0s")
            self.sampling_interval = 5.0

    @property
    def heap_limit_bytes(self) -> Optional[int]:
        if self.heap_limit_mb > 0:
            return int(self.heap_limit_mb * 1024 * 1024)
        return None

app_config = AppConfig()

def get_config() -> AppConfig:
    return app_config
