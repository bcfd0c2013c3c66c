"""
S3 upload of generated documents for the webhook variant that answers with
a URL instead of the document bytes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import UploadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedObject:
    key: str
    url: str
    file_name: str


class ObjectStorage:
    def __init__(
        self,
        bucket: Optional[str],
        prefix: str = "filled/",
        public_base_url: Optional[str] = None,
        url_expires: int = 3600,
        region: Optional[str] = None,
        s3_client=None,
        clock: Callable[[], float] = time.time,
    ):
        self.bucket = bucket
        self.prefix = prefix
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.url_expires = url_expires
        self._clock = clock
        self.s3 = s3_client
        if self.bucket and self.s3 is None:
            cfg = Config(region_name=region, connect_timeout=3, read_timeout=15, retries={"max_attempts": 2})
            self.s3 = boto3.client("s3", config=cfg)

    @property
    def enabled(self) -> bool:
        return bool(self.bucket)

    def object_key(self, stem: str) -> str:
        return f"{self.prefix}{stem}_{int(self._clock() * 1000)}.pdf"

    def upload_pdf(self, stem: str, pdf_bytes: bytes) -> UploadedObject:
        if not self.enabled:
            raise UploadError("Object storage is not configured", details="missing S3_BUCKET")

        key = self.object_key(stem)
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=pdf_bytes, ContentType="application/pdf")
            if self.public_base_url:
                url = f"{self.public_base_url}/{key}"
            else:
                url = self.s3.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.bucket, "Key": key},
                    ExpiresIn=self.url_expires,
                )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Upload of %s to s3://%s failed: %s", key, self.bucket, exc)
            raise UploadError("Upload to object storage failed", details=str(exc)) from exc

        logger.info("Uploaded s3://%s/%s (%d bytes)", self.bucket, key, len(pdf_bytes))
        return UploadedObject(key=key, url=url, file_name=key.rsplit("/", 1)[-1])
