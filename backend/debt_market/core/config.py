from functools import lru_cache

from pydantic import AnyHttpUrl, Field, TypeAdapter, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

SIGNATURE_SCHEMES = ("eip712", "raw_struct_hash")

_http_url = TypeAdapter(AnyHttpUrl)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,  # 环境变量名不区分大小写
    )

    # 数据库配置（默认使用 SQLite）
    database_url: str = "sqlite+aiosqlite:///./debt_market.db"

    # 索引服务（Subgraph）配置：主地址 + 备用地址，按顺序故障转移
    indexer_api_url: str
    indexer_api_key: str = "dev_dummy_key"
    indexer_backup_urls: str = Field(default="", description="逗号分隔的备用地址")
    indexer_timeout_seconds: float = Field(default=10.0, gt=0)
    indexer_page_size: int = Field(default=100, ge=1, le=1000)
    indexer_max_pages: int = Field(default=1, ge=1)

    # 同步任务配置
    sync_enabled: bool = True
    sync_interval_seconds: int = Field(default=30, ge=1)

    # CORS 允许的来源（逗号分隔）
    cors_origins: str = "http://localhost:3000"

    # 签名校验：全局默认方案 + 按 (chainId, 合约地址) 的覆盖
    signature_scheme: str = "eip712"
    signature_scheme_overrides: str = Field(
        default="",
        description="格式: chainId:合约地址=方案，逗号分隔",
    )
    eip712_domain_name: str = Field(default="AaveRouter", min_length=1)
    eip712_domain_version: str = Field(default="1", min_length=1)

    # 服务监听
    host: str = "0.0.0.0"
    port: int = 3002

    @field_validator("database_url")
    @classmethod
    def _check_database_url(cls, value: str) -> str:
        try:
            make_url(value)
        except ArgumentError as e:
            raise ValueError(f"无效的数据库连接串: {value}") from e
        return value

    @field_validator("indexer_api_url")
    @classmethod
    def _check_indexer_url(cls, value: str) -> str:
        _http_url.validate_python(value)
        return value

    @field_validator("indexer_api_key")
    @classmethod
    def _check_api_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("INDEXER_API_KEY 不能为空")
        return value

    @field_validator("indexer_backup_urls")
    @classmethod
    def _check_backup_urls(cls, value: str) -> str:
        for url in _split_csv(value):
            _http_url.validate_python(url)
        return value

    @field_validator("signature_scheme")
    @classmethod
    def _check_signature_scheme(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in SIGNATURE_SCHEMES:
            raise ValueError(f"SIGNATURE_SCHEME 必须是 {SIGNATURE_SCHEMES} 之一，当前: {value}")
        return value

    @field_validator("signature_scheme_overrides")
    @classmethod
    def _check_scheme_overrides(cls, value: str) -> str:
        _parse_scheme_overrides(value)
        return value

    @property
    def indexer_endpoints(self) -> list[str]:
        """主地址在前，备用地址按配置顺序在后"""
        return [self.indexer_api_url, *_split_csv(self.indexer_backup_urls)]

    @property
    def cors_origin_list(self) -> list[str]:
        return _split_csv(self.cors_origins)

    @property
    def scheme_overrides(self) -> dict[tuple[int, str], str]:
        return _parse_scheme_overrides(self.signature_scheme_overrides)


def _parse_scheme_overrides(value: str) -> dict[tuple[int, str], str]:
    overrides: dict[tuple[int, str], str] = {}
    for entry in _split_csv(value):
        try:
            target, scheme = entry.split("=", 1)
            chain_id, contract = target.split(":", 1)
            key = (int(chain_id.strip()), contract.strip().lower())
        except ValueError as e:
            raise ValueError(f"无效的签名方案覆盖配置: {entry}") from e
        scheme = scheme.strip().lower()
        if scheme not in SIGNATURE_SCHEMES:
            raise ValueError(f"未知的签名方案: {scheme}（{entry}）")
        overrides[key] = scheme
    return overrides


@lru_cache
def get_settings() -> Settings:
    return Settings()
