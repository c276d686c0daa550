"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。

环境变量格式：RELAY_MONITOR_<SECTION>__<FIELD>，例如
RELAY_MONITOR_COLLECTOR__INTERVAL=10
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """数据库配置"""
    path: str = "data/relaystats.db"
    timeout: int = 30


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 20000
    cors_origins: List[str] = ["http://localhost:20000", "http://127.0.0.1:20000"]


class DiscoveryConfig(BaseModel):
    """中继目录服务配置"""
    url: str = "https://relays.syncthing.net/endpoint"
    refresh_interval: int = 60
    timeout: int = 5


class CollectorConfig(BaseModel):
    """采集配置"""
    interval: int = 5
    timeout: int = 3


class MetricsConfig(BaseModel):
    """InfluxDB 导出配置（可选）"""
    enabled: bool = False
    url: str = "http://localhost:8086"
    database: str = "syncthingrelay"
    username: str = ""
    password: str = ""
    timeout: int = 5


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseSettings):
    """应用配置（完整配置）"""
    model_config = SettingsConfigDict(
        env_prefix="RELAY_MONITOR_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量优先于 YAML 文件内容
        return env_settings, init_settings, file_secret_settings


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 RELAY_MONITOR_CONFIG
    3. 默认路径 config.yaml
    """
    if config_path is None:
        config_path = os.environ.get("RELAY_MONITOR_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
        if raw_config:
            base_dir = config_file.resolve().parent

            def _resolve_path(value: Optional[str]) -> Optional[str]:
                # 相对路径以配置文件所在目录为基准
                if not value:
                    return value
                path = Path(value)
                if path.is_absolute():
                    return str(path)
                return str((base_dir / path).resolve())

            if "database" in raw_config and raw_config["database"].get("path"):
                raw_config["database"]["path"] = _resolve_path(raw_config["database"]["path"])
            if "logging" in raw_config and raw_config["logging"].get("file"):
                raw_config["logging"]["file"] = _resolve_path(raw_config["logging"]["file"])

            return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
