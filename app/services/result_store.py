"""Persistence of coax result payloads too large to return inline.

Keys group results by request and encode the grid size and update mode, e.g.
``coax-results/run-7/n80-gauss_seidel-20240101T120000Z.json``. S3 is used when
a bucket and credentials are configured; the local directory is both the
default backend and the fallback when an upload fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import Settings, settings
from schemas import SimulationResult, StorageInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredPayload:
    backend: str
    key: str
    url: str
    bucket: Optional[str] = None
    local_path: Optional[str] = None
    expires_in: Optional[int] = None

    def storage_info(self) -> StorageInfo:
        return StorageInfo(
            backend=self.backend,
            url=self.url,
            bucket=self.bucket,
            key=self.key,
            local_path=self.local_path,
            expires_in=self.expires_in,
        )


def result_key(prefix: str, result: SimulationResult, now: Optional[datetime] = None) -> str:
    """Storage key for one result: ``<prefix>/<request_id>/n<side>-<mode>-<utc stamp>.json``."""
    meta = result.metadata
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    name = f"{meta.request_id}/n{meta.side_length}-{meta.solver.update_mode}-{stamp}.json"
    prefix = prefix.strip("/")
    return f"{prefix}/{name}" if prefix else name


class ResultStore(ABC):
    """Writes encoded results under keys derived from their metadata."""

    backend = ""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix

    def store_result(self, result: SimulationResult, payload: bytes) -> StoredPayload:
        key = result_key(self.prefix, result)
        stored = self.put(key, payload)
        logger.info("Stored %d bytes at %s (%s)", len(payload), stored.key, stored.backend)
        return stored

    @abstractmethod
    def put(self, key: str, payload: bytes) -> StoredPayload:
        raise NotImplementedError


class LocalResultStore(ResultStore):
    """Files under a directory, served back by ``GET /results/{key}``."""

    backend = "local"

    def __init__(self, directory: str | Path, prefix: str = "") -> None:
        super().__init__(prefix)
        self.directory = Path(directory)

    def put(self, key: str, payload: bytes) -> StoredPayload:
        path = self.directory / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        return StoredPayload(backend=self.backend, key=key, url=f"/results/{key}", local_path=str(path))


class S3ResultStore(ResultStore):
    """Objects in an S3 bucket, handed out as presigned GET URLs."""

    backend = "s3"

    def __init__(self, client, bucket: str, prefix: str, expiry: int, fallback: LocalResultStore) -> None:
        super().__init__(prefix)
        self.client = client
        self.bucket = bucket
        self.expiry = expiry
        self.fallback = fallback

    def put(self, key: str, payload: bytes) -> StoredPayload:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=payload, ContentType="application/json")
            url = self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.expiry,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Upload of %s to s3://%s failed, keeping it on disk: %s", key, self.bucket, exc)
            return self.fallback.put(key, payload)
        return StoredPayload(backend=self.backend, key=key, url=url, bucket=self.bucket, expires_in=self.expiry)


def build_store(config: Optional[Settings] = None) -> ResultStore:
    """S3 store when a bucket and credentials are available, local store otherwise."""
    config = config or settings
    local = LocalResultStore(config.local_storage_dir, prefix=config.s3_prefix)
    if not config.s3_bucket:
        return local

    session = boto3.Session()
    if session.get_credentials() is None:
        logger.warning("S3_BUCKET=%s is set but no AWS credentials were found; storing results locally", config.s3_bucket)
        return local
    return S3ResultStore(
        session.client("s3"),
        bucket=config.s3_bucket,
        prefix=config.s3_prefix,
        expiry=config.presign_expiry_seconds,
        fallback=local,
    )
