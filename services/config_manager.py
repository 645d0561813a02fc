"""
Configuration manager for loading and validating application configuration.
"""
import os
import json
import logging
from typing import Any, Dict, List, Optional

import yaml

from models.config import AppConfig, LoggingConfig, OCRConfig, OutputConfig, StitchConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages application configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, uses default locations.
        """
        self._explicit_path = config_path is not None
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[AppConfig] = None

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in standard locations."""
        possible_paths = [
            "config.yaml",
            "config.yml",
            "config.json",
            "settings.yaml",
            "settings.yml",
            "settings.json"
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        return None

    def load_config(self) -> AppConfig:
        """
        Load configuration from file or create default configuration.

        Returns:
            AppConfig: Loaded or default configuration

        Raises:
            ValueError: If configuration validation fails
            FileNotFoundError: If an explicitly given config file doesn't exist
        """
        if self._config is not None:
            return self._config

        if self.config_path and (self._explicit_path or os.path.exists(self.config_path)):
            config_data = self._load_config_file(self.config_path)
            self._config = self._create_config_from_dict(config_data)
            logger.debug(f"Loaded configuration from {self.config_path}")
        else:
            # Create default configuration
            self._config = AppConfig()

        # Validate configuration
        self._config.validate()

        return self._config

    def _load_config_file(self, file_path: str) -> Dict[str, Any]:
        """
        Load configuration data from file.

        Raises:
            ValueError: If file format is not supported
            FileNotFoundError: If file doesn't exist
        """
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        file_ext = os.path.splitext(file_path)[1].lower()

        with open(file_path, 'r', encoding='utf-8') as f:
            if file_ext in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif file_ext == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported configuration file format: {file_ext}")

    @staticmethod
    def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = config_data.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Configuration section '{name}' must be a mapping")
        return section

    def _create_config_from_dict(self, config_data: Dict[str, Any]) -> AppConfig:
        """
        从字典数据创建 AppConfig 实例。

        处理流程：
        1) 按 ocr/stitch/output/logging 四个分区分别构建子配置；
        2) 缺失的键使用 dataclass 默认值；
        3) 未知键记录 warning 并忽略，避免拼写错误被静默吞掉；
        4) formats / exclude_fields / quiet_loggers 若为逗号分隔的字符串，自动转换为列表。
        """
        if not isinstance(config_data, dict):
            raise ValueError("Configuration root must be a mapping")

        def _build(cls, name: str):
            section = dict(self._section(config_data, name))
            known = set(cls.__dataclass_fields__)
            unknown = sorted(k for k in section if k not in known)
            if unknown:
                logger.warning(f"Ignoring unknown keys in '{name}' section: {', '.join(unknown)}")
            return cls(**{k: v for k, v in section.items() if k in known})

        output = _build(OutputConfig, "output")
        output.formats = self._as_list(output.formats)
        output.exclude_fields = self._as_list(output.exclude_fields)
        log_cfg = _build(LoggingConfig, "logging")
        log_cfg.quiet_loggers = self._as_list(log_cfg.quiet_loggers)

        return AppConfig(
            ocr=_build(OCRConfig, "ocr"),
            stitch=_build(StitchConfig, "stitch"),
            output=output,
            logging=log_cfg,
        )

    @staticmethod
    def _as_list(value) -> List[str]:
        """Accept a list or a comma-separated string."""
        if value is None:
            return []
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return [str(v) for v in value]

    def save_config(self, config: AppConfig, file_path: Optional[str] = None) -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration to save
            file_path: Path to save file. If None, uses current config_path
        """
        save_path = file_path or self.config_path or "config.yaml"

        # Ensure output directory exists
        os.makedirs(os.path.dirname(save_path) if os.path.dirname(save_path) else ".", exist_ok=True)

        config_dict = config.to_dict()

        file_ext = os.path.splitext(save_path)[1].lower()
        if file_ext not in ('.yaml', '.yml', '.json'):
            raise ValueError(f"Unsupported configuration file format: {file_ext}")

        with open(save_path, 'w', encoding='utf-8') as f:
            if file_ext in ['.yaml', '.yml']:
                yaml.safe_dump(config_dict, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            else:
                json.dump(config_dict, f, indent=2, ensure_ascii=False)

    def get_config(self) -> AppConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> AppConfig:
        """Reload configuration from file."""
        self._config = None
        return self.load_config()

    def create_default_config_file(self, file_path: str = "config.yaml") -> None:
        """Create a default configuration file."""
        self.save_config(AppConfig(), file_path)
