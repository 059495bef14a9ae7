"""Contract document storage: S3 when a bucket is configured, local disk otherwise."""
import asyncio
import logging
import uuid
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from school_billing.config import settings

logger = logging.getLogger(__name__)

_s3 = None


def get_s3():
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
    return _s3


def use_s3() -> bool:
    return bool(settings.s3_bucket_contracts)


def document_key(enrollment_id: str, kind: str, filename: str = "") -> str:
    ext = (filename or "").rsplit(".", 1)[-1].lower() if "." in (filename or "") else "pdf"
    return f"contracts/{enrollment_id}/{kind}-{uuid.uuid4().hex}.{ext}"


def _put_s3_sync(key: str, body: bytes, content_type: str) -> None:
    get_s3().put_object(Bucket=settings.s3_bucket_contracts, Key=key, Body=body, ContentType=content_type)


def _write_local_sync(key: str, body: bytes) -> str:
    path = Path(settings.contracts_dir) / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(body)
    return str(path)


async def save_document(key: str, body: bytes, content_type: str = "application/pdf") -> str:
    """Store ``body`` under ``key``; return the reference kept on the contract."""
    if use_s3():
        await asyncio.to_thread(_put_s3_sync, key, body, content_type)
        bucket = settings.s3_bucket_contracts
        return f"https://{bucket}.s3.{settings.aws_region}.amazonaws.com/{key}"
    return await asyncio.to_thread(_write_local_sync, key, body)


async def delete_document(reference: str) -> None:
    """Best-effort removal, used when a transition that stored a file is rejected."""
    if use_s3():
        key = reference.split(".amazonaws.com/", 1)[-1]
        try:
            await asyncio.to_thread(get_s3().delete_object, Bucket=settings.s3_bucket_contracts, Key=key)
        except ClientError:
            logger.warning("Could not delete %s from S3", key)
        return
    try:
        Path(reference).unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not delete local document %s", reference)
