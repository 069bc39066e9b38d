# app/utils/aws.py
from __future__ import annotations

"""
🧊 Luminav • S3 Utilities
=========================

Thin boto3 wrapper used by:
- Segment publishing (server-side uploads of manifests and segments)
- Playback (short-lived signed GET for manifests and segments)
- Best-effort rollback of a failed publish (batch delete)

🎯 Goals
--------
- Safe presigned GET (SigV4)
- Explicit timeouts + bounded retries
- Defensive key normalization (no leading slash, no `..`)
- Pluggable creds (env / role / IRSA) with explicit override if provided
- Zero secret leakage in logs

🔗 Contract
-----------
- Class: `S3Client`, `S3StorageError`
- Methods: `S3Client.put_file(...)`
           `S3Client.presigned_get(...)`
           `S3Client.delete(...)`
           `S3Client.delete_many(...)`
           `S3Client.object_url(...)`

The client is synchronous (boto3); async callers offload calls with
`asyncio.to_thread`.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import logging
import re

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig

from app.core.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Exceptions
# ─────────────────────────────────────────────────────────────────────────────

class S3StorageError(RuntimeError):
    """Raised when a storage operation fails (network, auth, policy, etc.)."""


# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key validation
# ─────────────────────────────────────────────────────────────────────────────

_KEY_ALLOWED_RE = re.compile(r"[A-Za-z0-9._\-/]+")
_DELETE_BATCH = 1000  # S3 DeleteObjects hard limit


def normalize_key(key: str) -> str:
    """
    Normalize and validate S3 object keys.

    Steps
    -----
    1) Coerce to str, strip whitespace
    2) Remove leading '/'
    3) Collapse '//' runs
    4) Reject path traversal ('..') and disallowed characters

    Raises
    ------
    S3StorageError
        If key is empty or contains unsafe characters.
    """
    k = str(key or "").strip().lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise S3StorageError("Invalid storage key: empty")
    if ".." in k:
        raise S3StorageError("Invalid storage key: path traversal detected")
    if not _KEY_ALLOWED_RE.fullmatch(k):
        raise S3StorageError("Invalid storage key: contains forbidden characters")
    return k


def _secret_value(v: Any) -> Optional[str]:
    if v is None:
        return None
    return v.get_secret_value() if hasattr(v, "get_secret_value") else str(v)


# ─────────────────────────────────────────────────────────────────────────────
# 📦 S3 Client
# ─────────────────────────────────────────────────────────────────────────────

class S3Client:
    """
    High-level S3 wrapper with safe defaults.

    Parameters
    ----------
    bucket : str | None
        Destination bucket. Defaults to `settings.AWS_BUCKET_NAME`.
    region_name : str | None
        Defaults to `settings.AWS_REGION`.
    endpoint_url : str | None
        Custom S3-compatible endpoint (LocalStack/MinIO). Defaults to
        `settings.AWS_S3_ENDPOINT_URL`.
    client : Any | None
        Pre-built boto3 client (tests, custom sessions).

    Notes
    -----
    * Credentials: explicit keys from settings when both are present,
      otherwise the standard AWS credential chain.
    * Retries/Timeouts: bounded retry policy and short connect timeout.
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        *,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self.bucket = bucket or settings.AWS_BUCKET_NAME
        if not self.bucket:
            raise S3StorageError("AWS_BUCKET_NAME not configured")

        self.region = region_name or settings.AWS_REGION
        self._endpoint = endpoint_url or settings.AWS_S3_ENDPOINT_URL

        if client is not None:
            self.client = client
        else:
            cfg = BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 5, "mode": "standard"},
                connect_timeout=3,
                read_timeout=60,
                max_pool_connections=max(10, settings.UPLOAD_CONCURRENCY),
            )
            client_kwargs: Dict[str, Any] = {"config": cfg, "region_name": self.region}
            if self._endpoint:
                client_kwargs["endpoint_url"] = self._endpoint
            ak = settings.AWS_ACCESS_KEY_ID
            sk = _secret_value(settings.AWS_SECRET_ACCESS_KEY)
            st = _secret_value(settings.AWS_SESSION_TOKEN)
            if ak and sk:
                client_kwargs["aws_access_key_id"] = ak
                client_kwargs["aws_secret_access_key"] = sk
                if st:
                    client_kwargs["aws_session_token"] = st
            try:
                self.client = boto3.client("s3", **client_kwargs)
            except Exception as e:  # pragma: no cover
                raise S3StorageError(f"Failed to create S3 client: {e}") from e

        self._transfer = TransferConfig(multipart_threshold=16 * 1024 * 1024, use_threads=False)

    # ────────────────────────────────────────────────────────────────────────
    # 🚀 Uploads
    # ────────────────────────────────────────────────────────────────────────

    def put_file(
        self,
        key: str,
        path: Path | str,
        *,
        content_type: str,
        content_disposition: Optional[str] = "inline",
    ) -> None:
        """
        Upload a local file (managed transfer; multipart above 16 MB).

        Overwrites an existing object at `key`.

        Raises
        ------
        S3StorageError
            On upload failure or invalid key.
        """
        k = normalize_key(key)
        extra: Dict[str, Any] = {"ContentType": content_type}
        if content_disposition:
            extra["ContentDisposition"] = content_disposition
        try:
            self.client.upload_file(str(path), self.bucket, k, ExtraArgs=extra, Config=self._transfer)
        except Exception as e:
            raise S3StorageError(f"Failed to upload {k}: {e}") from e

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Signed URL helpers
    # ────────────────────────────────────────────────────────────────────────

    def presigned_get(
        self,
        key: str,
        *,
        expires_in: int = 300,
        response_content_type: Optional[str] = None,
        response_content_disposition: Optional[str] = None,
    ) -> str:
        """
        Generate a short-lived **presigned GET** URL.

        Parameters
        ----------
        key : str
            Object key (normalized).
        expires_in : int
            TTL seconds.
        response_content_type : str | None
            Override for the `Content-Type` returned to the client.
        response_content_disposition : str | None
            e.g. `inline` so players render rather than download.
        """
        k = normalize_key(key)
        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": k}
        if response_content_type:
            params["ResponseContentType"] = response_content_type
        if response_content_disposition:
            params["ResponseContentDisposition"] = response_content_disposition
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=int(expires_in),
            )
        except Exception as e:
            raise S3StorageError(f"Failed to create presigned GET: {e}") from e

    # ────────────────────────────────────────────────────────────────────────
    # 🧹 Deletes (best-effort)
    # ────────────────────────────────────────────────────────────────────────

    def delete(self, key: str) -> bool:
        """
        Best-effort delete.

        Returns True when the request was accepted (S3 deletes are idempotent),
        False on non-ignorable errors (logged at WARNING).
        """
        k = normalize_key(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=k)
            return True
        except Exception as e:
            logger.warning("delete_object failed (non-fatal): %s", e)
            return False

    def delete_many(self, keys: Iterable[str]) -> List[str]:
        """
        Batch delete in chunks of 1000.

        Returns the keys S3 reported as failed (empty list on full success).
        """
        normalized = [normalize_key(k) for k in keys]
        failed: List[str] = []
        for start in range(0, len(normalized), _DELETE_BATCH):
            chunk = normalized[start:start + _DELETE_BATCH]
            try:
                resp = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                )
            except Exception as e:
                logger.warning("delete_objects failed for %d keys (non-fatal): %s", len(chunk), e)
                failed.extend(chunk)
                continue
            failed.extend(err.get("Key", "") for err in (resp or {}).get("Errors", []))
        return failed

    # ────────────────────────────────────────────────────────────────────────
    # 🌐 Public URL helpers
    # ────────────────────────────────────────────────────────────────────────

    def object_url(self, key: str) -> str:
        """
        Direct (unsigned) HTTPS URL for a key. Private objects still need a
        signature at fetch time; this is the stable reference stored in rows.
        """
        k = normalize_key(key)
        if self._endpoint:
            return f"{self._endpoint.rstrip('/')}/{self.bucket}/{k}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{k}"

    def __repr__(self) -> str:  # pragma: no cover
        return f"S3Client(bucket={self.bucket}, region={self.region}, endpoint={'yes' if self._endpoint else 'no'})"
