from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RemoteCatalogConfig:
    base_url: str
    consumer_key: str
    consumer_secret: str
    timeout_seconds: float = 20.0

    @property
    def is_complete(self) -> bool:
        return bool(self.base_url and self.consumer_key and self.consumer_secret)


@dataclass(frozen=True)
class SyncSettings:
    page_size: int = 100
    upsert_chunk_size: int = 50
    delete_chunk_size: int = 100
    product_delete_chunk_size: int = 500
    quiescence_seconds: float = 0.25
    retry_max_attempts: int = 5
    retry_base_delay_seconds: float = 0.5
    retry_jitter_seconds: float = 1.0
    retry_cap_seconds: float = 10.0
