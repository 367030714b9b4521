"""
S3 JSON cache
=============
Durable CacheStore backed by an S3 bucket, used for historical datasets so
that several API workers share one 24h cache.

Layout: s3://{bucket}/{prefix}/{key}.json -> {"cached_at": iso, "value": {...}}
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import boto3
from botocore.exceptions import ClientError

from megam.utils.cache import CacheStore

logger = logging.getLogger(__name__)


class S3JsonCache(CacheStore):
    """Stores JSON documents in S3 and expires them by age on read"""

    def __init__(self, bucket: str, prefix: str = 'cache', ttl_seconds: Optional[float] = None,
                 encode: Callable[[Any], Any] = lambda v: v,
                 decode: Callable[[Any], Any] = lambda v: v,
                 s3_client=None,
                 now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        Initialize S3 cache

        Args:
            bucket: S3 bucket name
            prefix: Key prefix inside the bucket
            ttl_seconds: Documents older than this are treated as missing
            encode: Converts a value into something json.dumps accepts
            decode: Rebuilds the value from the stored JSON
            s3_client: Optional preconfigured boto3 client
        """
        self.bucket = bucket
        self.prefix = prefix.strip('/')
        self.ttl_seconds = ttl_seconds
        self.encode = encode
        self.decode = decode
        self.s3_client = s3_client or boto3.client('s3')
        self.now = now

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}/{key}.json"

    def get(self, key: str) -> Optional[Any]:
        s3_key = self._object_key(key)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=s3_key)
            raw = response['Body'].read()
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code not in ('NoSuchKey', '404'):
                logger.error(f"❌ Failed to read s3://{self.bucket}/{s3_key}: {e}")
            return None

        try:
            document = json.loads(raw.decode('utf-8'))
            cached_at = datetime.fromisoformat(document['cached_at'])
            age_seconds = (self.now() - cached_at).total_seconds()
            if self.ttl_seconds is not None and age_seconds >= self.ttl_seconds:
                logger.info(f"⏰ S3 cache expired for {key} ({age_seconds / 3600:.1f}h old)")
                return None
            value = self.decode(document['value'])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"⚠️ Ignoring unreadable cache document s3://{self.bucket}/{s3_key}: {e}")
            return None

        logger.info(f"📦 Using S3 cached {key} ({age_seconds / 3600:.1f}h old)")
        return value

    def set(self, key: str, value: Any) -> None:
        s3_key = self._object_key(key)
        document = {
            'cached_at': self.now().isoformat(),
            'value': self.encode(value),
        }
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=s3_key,
                Body=json.dumps(document),
                ContentType='application/json'
            )
            logger.info(f"💾 Cached s3://{self.bucket}/{s3_key}")
        except ClientError as e:
            logger.error(f"❌ Failed to cache {key} in S3: {e}")

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except ClientError as e:
            logger.error(f"❌ Failed to delete {key} from S3: {e}")
