"""
Object storage for chunk audio.

Wraps an S3-compatible bucket (AWS S3, Cloudflare R2, MinIO) behind three
operations: check whether a key exists, upload bytes, and produce a URL the
transcription service can fetch.
"""

from pathlib import Path
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from yt_transcript.shared import (
    tprint as print,
    PipelineConfig, UploadError, _print_reusing,
)

AUDIO_CONTENT_TYPE = "audio/mpeg"
URL_MODES = ("presigned", "public")
_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def chunk_object_key(video_id: str, label: str) -> str:
    """Object key for one chunk; `label` is the chunk's plan-qualified name."""
    return f"audio/{video_id}_{label}.mp3"


def build_s3_client(config: PipelineConfig):
    return boto3.client(
        "s3",
        endpoint_url=config.s3_endpoint,
        region_name=config.s3_region,
        aws_access_key_id=config.s3_access_key,
        aws_secret_access_key=config.s3_secret_key,
        config=Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            connect_timeout=config.storage_timeout,
            read_timeout=config.storage_timeout,
        ),
    )


class BucketStorage:
    """Storage gateway for one configured bucket.

    The boto3 client is created once and is safe to share between the
    upload worker threads.
    """

    def __init__(self, config: PipelineConfig, client=None):
        self.config = config
        self.bucket = config.s3_bucket
        self.client = client if client is not None else build_s3_client(config)

    def exists(self, bucket: str, key: str) -> bool:
        """True if the object exists; a missing object is not an error."""
        try:
            self.client.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in _MISSING_CODES:
                return False
            raise UploadError("could not check object", key=key, cause=e) from e
        except BotoCoreError as e:
            raise UploadError("could not check object", key=key, cause=e) from e

    def upload(self, bucket: str, key: str, body: bytes,
               content_type: str = AUDIO_CONTENT_TYPE, public: bool = False) -> None:
        extra = {"ACL": "public-read"} if public else {}
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=body,
                                   ContentType=content_type, **extra)
        except (ClientError, BotoCoreError) as e:
            raise UploadError("upload failed", key=key, cause=e) from e

    def url_for(self, bucket: str, key: str, mode: str = "presigned",
                ttl: Optional[int] = None) -> str:
        """Return a fetchable URL: time-limited presigned, or plain public."""
        if mode == "public":
            if not self.config.s3_endpoint:
                raise UploadError("public URLs need an S3 endpoint", key=key)
            return f"{self.config.s3_endpoint.rstrip('/')}/{bucket}/{key}"
        if mode != "presigned":
            raise ValueError(f"Unknown URL mode: {mode} (valid: {', '.join(URL_MODES)})")
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=ttl or self.config.presigned_url_expiry_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise UploadError("could not sign URL", key=key, cause=e) from e

    @property
    def url_mode(self) -> str:
        return "presigned" if self.config.use_presigned_links else "public"

    def upload_audio(self, file_path: Path, key: str) -> str:
        """Upload a local audio file unless the key exists, then return its URL."""
        if self.exists(self.bucket, key):
            _print_reusing(key)
        else:
            if self.config.verbose:
                print(f"  Uploading {file_path.name} -> {key}")
            try:
                body = file_path.read_bytes()
            except OSError as e:
                raise UploadError("could not read chunk file", key=str(file_path), cause=e) from e
            self.upload(self.bucket, key, body, AUDIO_CONTENT_TYPE,
                        public=not self.config.use_presigned_links)
        return self.url_for(self.bucket, key, self.url_mode)
