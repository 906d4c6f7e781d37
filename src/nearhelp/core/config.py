"""
Configuration Management System for NearHelp

Handles loading configuration from environment variables, config files,
and provides validation and runtime updates.
"""

import os
import json
import yaml
import logging
from typing import Any, Callable, Dict, List, Optional
from pathlib import Path
from dataclasses import dataclass


@dataclass
class ConfigSource:
    """Configuration source definition"""
    name: str
    priority: int
    loader: Callable
    path: Optional[str] = None


class ConfigurationError(Exception):
    """Configuration-related errors"""
    pass


class ConfigurationManager:
    """
    Manages system configuration with support for multiple sources,
    validation, and runtime updates.
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.config: Dict[str, Any] = {}
        self.watchers: Dict[str, List[Callable]] = {}
        self.sources: List[ConfigSource] = []
        self.logger = logging.getLogger(__name__)

        # Default configuration values
        self.defaults = {
            "app": {
                "name": "NearHelp",
                "version": "1.0.0",
                "debug": False,
                "log_level": "INFO"
            },
            "server": {
                "host": "0.0.0.0",
                "port": 5000,
                "cors_origins": ["http://localhost:5173", "http://127.0.0.1:5173"]
            },
            "database": {
                "path": "data/nearhelp.db",
                "max_connections": 10
            },
            "auth": {
                "jwt_secret": "nearhelp-dev-secret",
                "jwt_algorithm": "HS256",
                "token_ttl_seconds": 7 * 24 * 3600,
                "bcrypt_rounds": 10,
                "admin_emails": []
            },
            "email": {
                "enabled": False,
                "smtp_host": "",
                "smtp_port": 587,
                "smtp_user": "",
                "smtp_password": "",
                "mail_from": "",
                "use_tls": True,
                "timeout": 30
            },
            "live": {
                "send_timeout": 5.0
            },
            "incidents": {
                "default_search_radius": 2000,
                "active_limit": 100,
                "mine_limit": 200
            },
            "logging": {
                "level": "INFO",
                "file": "logs/nearhelp.log",
                "max_size": "10MB",
                "backup_count": 5
            }
        }

        self._setup_sources()

    def _setup_sources(self):
        """Set up configuration sources in priority order"""
        # Environment variables (highest priority)
        self.sources.append(ConfigSource(
            name="environment",
            priority=4,
            loader=self._load_from_env
        ))

        local_config_path = str(self.config_dir / "config.yaml")
        self.sources.append(ConfigSource(
            name="local_config",
            priority=3,
            loader=lambda: self._load_from_file(local_config_path),
            path=local_config_path
        ))

        default_config_path = str(self.config_dir / "default.yaml")
        self.sources.append(ConfigSource(
            name="default_config",
            priority=2,
            loader=lambda: self._load_from_file(default_config_path),
            path=default_config_path
        ))

        # Built-in defaults (lowest priority)
        self.sources.append(ConfigSource(
            name="defaults",
            priority=1,
            loader=lambda: self.defaults
        ))

    def load_config(self) -> None:
        """Load configuration from all sources"""
        self.logger.info("Loading configuration from all sources")

        merged_config: Dict[str, Any] = {}

        # Lowest priority first so later sources override
        for source in sorted(self.sources, key=lambda x: x.priority):
            try:
                source_config = source.loader()
                if source_config:
                    merged_config = self._deep_merge(merged_config, source_config)
                    self.logger.debug(f"Loaded configuration from {source.name}")
            except Exception as e:
                self.logger.warning(f"Failed to load config from {source.name}: {e}")

        self.config = merged_config
        self._validate_config()
        self.logger.info("Configuration loaded successfully")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config: Dict[str, Any] = {}

        env_mappings = {
            "NEARHELP_DEBUG": "app.debug",
            "NEARHELP_LOG_LEVEL": "app.log_level",
            "NEARHELP_PORT": "server.port",
            "NEARHELP_CLIENT_ORIGINS": "server.cors_origins",
            "NEARHELP_DB_PATH": "database.path",
            "NEARHELP_JWT_SECRET": "auth.jwt_secret",
            "NEARHELP_ADMIN_EMAILS": "auth.admin_emails",
            "NEARHELP_EMAIL_ALERTS_ENABLED": "email.enabled",
            "NEARHELP_SMTP_HOST": "email.smtp_host",
            "NEARHELP_SMTP_PORT": "email.smtp_port",
            "NEARHELP_SMTP_USER": "email.smtp_user",
            "NEARHELP_SMTP_PASSWORD": "email.smtp_password",
            "NEARHELP_MAIL_FROM": "email.mail_from",
        }
        list_keys = {"server.cors_origins", "auth.admin_emails"}
        int_keys = {"server.port", "email.smtp_port"}
        bool_keys = {"app.debug", "email.enabled"}

        for env_var, config_key in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue

            if config_key in list_keys:
                value = [item.strip() for item in value.split(",") if item.strip()]
            elif config_key in bool_keys:
                value = value.strip().lower() in ('true', '1', 'yes', 'on')
            elif config_key in int_keys and value.strip().isdigit():
                value = int(value)

            self._set_nested_value(config, config_key, value)

        return config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        path = Path(file_path)

        if not path.exists():
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                elif path.suffix.lower() == '.json':
                    return json.load(f)
                else:
                    self.logger.warning(f"Unsupported config file format: {path}")
                    return {}
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            self.logger.error(f"Error loading config file {path}: {e}")
            return {}

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, config: Dict, key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation"""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _validate_config(self) -> None:
        """Validate configuration values"""
        errors = []

        for section in ['app', 'server', 'database', 'auth']:
            if section not in self.config:
                errors.append(f"Missing required configuration section: {section}")

        db_path = self.get('database.path')
        if db_path and db_path != ":memory:":
            db_dir = Path(db_path).parent
            if not db_dir.exists():
                try:
                    db_dir.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    errors.append(f"Cannot create database directory {db_dir}: {e}")

        port = self.get('server.port')
        if port and (not isinstance(port, int) or port < 1 or port > 65535):
            errors.append(f"Invalid server port: {port}")

        smtp_port = self.get('email.smtp_port')
        if smtp_port is not None and (not isinstance(smtp_port, int) or smtp_port < 1 or smtp_port > 65535):
            errors.append(f"Invalid SMTP port: {smtp_port}")

        secret = self.get('auth.jwt_secret')
        if not secret:
            errors.append("auth.jwt_secret must not be empty")
        elif not isinstance(secret, str):
            errors.append("auth.jwt_secret must be a string")

        ttl = self.get('auth.token_ttl_seconds')
        if ttl is not None and (not isinstance(ttl, int) or ttl <= 0):
            errors.append(f"Invalid token TTL: {ttl}")

        log_level = self.get('app.log_level', 'INFO')
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if str(log_level).upper() not in valid_levels:
            errors.append(f"Invalid log level: {log_level}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        current = self.config

        try:
            for k in keys:
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        self._set_nested_value(self.config, key, value)

        if key in self.watchers:
            for callback in self.watchers[key]:
                try:
                    callback(key, value)
                except Exception as e:
                    self.logger.error(f"Error in config watcher for {key}: {e}")

    def watch(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Watch for configuration changes"""
        self.watchers.setdefault(key, []).append(callback)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section"""
        return self.get(section, {})

    def get_admin_emails(self) -> List[str]:
        """Emails that are granted the admin role on registration"""
        return [email.strip().lower() for email in self.get('auth.admin_emails', []) if email]

    def get_cors_origins(self) -> List[str]:
        return self.get('server.cors_origins', [])
