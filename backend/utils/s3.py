import logging

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from config.env import (
    AWS_REGION,
    AWS_ACCESS_KEY_ID,
    AWS_SECRET_ACCESS_KEY,
    AWS_S3_ENDPOINT_URL,
    AWS_S3_PUBLIC_BUCKET,
    AWS_S3_PRIVATE_BUCKET,
)
from utils.storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)


class S3Storage(StorageBackend):
    def __init__(self, client=None, public_bucket=None, private_bucket=None):
        self.public_bucket = public_bucket or AWS_S3_PUBLIC_BUCKET
        self.private_bucket = private_bucket or AWS_S3_PRIVATE_BUCKET
        self.region = AWS_REGION
        self.endpoint_url = AWS_S3_ENDPOINT_URL
        self.client = client or boto3.client(
            "s3",
            aws_access_key_id=AWS_ACCESS_KEY_ID,
            aws_secret_access_key=AWS_SECRET_ACCESS_KEY,
            region_name=AWS_REGION,
            endpoint_url=AWS_S3_ENDPOINT_URL,
            config=BotoConfig(signature_version="s3v4"),
        )

    def _bucket(self, realm: str) -> str:
        bucket = self.private_bucket if realm == "private" else self.public_bucket
        if not bucket:
            raise StorageError(f"No bucket configured for {realm} realm")
        return bucket

    def signed_put_url(self, realm, key, content_type, expires_in, metadata=None):
        params = {
            "Bucket": self._bucket(realm),
            "Key": key,
            "ContentType": content_type,
        }
        if metadata:
            params["Metadata"] = {k: str(v) for k, v in metadata.items()}

        try:
            return self.client.generate_presigned_url(
                "put_object", Params=params, ExpiresIn=expires_in
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3_PRESIGN_PUT_FAILED key=%s error=%s", key, e)
            raise StorageError(f"Error generating upload URL: {e}") from e

    def signed_get_url(self, realm, key, expires_in):
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket(realm), "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3_PRESIGN_GET_FAILED key=%s error=%s", key, e)
            raise StorageError(f"Error generating download URL: {e}") from e

    def object_url(self, realm, key):
        bucket = self._bucket(realm)
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{bucket}/{key}"
        return f"https://{bucket}.s3.{self.region}.amazonaws.com/{key}"

    def delete_object(self, realm, key):
        try:
            self.client.delete_object(Bucket=self._bucket(realm), Key=key)
            logger.info("S3_OBJECT_DELETED key=%s", key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                return
            logger.error("S3_DELETE_FAILED key=%s error=%s", key, e)
            raise StorageError(f"Failed to delete object: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete object: {e}") from e
