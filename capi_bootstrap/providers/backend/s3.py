"""S3-compatible object storage backend."""

import logging
import os
import posixpath
from typing import Any, Dict

import boto3
import yaml
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import PrivateAttr

from capi_bootstrap.cloudinit.models import InitFile
from capi_bootstrap.exceptions import BackendError, ConfigurationError, MissingCredentialsError, StateNotFoundError
from capi_bootstrap.providers.backend.base import STATE_FILE, BackendProvider, download_command
from capi_bootstrap.utils import to_yaml

logger = logging.getLogger(__name__)

PRESIGN_EXPIRES = 3600
CLUSTERS_PREFIX = "clusters"


class S3Backend(BackendProvider):
    """Keeps state at ``clusters/<cluster>/kubeconfig.yaml`` in a bucket.

    Credentials are read from the environment on every run and never
    persisted with the state.
    """
    name: str = "s3"
    bucket_name: str = ""
    endpoint: str = ""
    region: str = ""

    _client: Any = PrivateAttr(default=None)

    @property
    def client(self) -> Any:
        if self._client is None:
            raise ConfigurationError("s3 client is not initialized, run pre_cmd first")
        return self._client

    def pre_cmd(self, cluster_name: str) -> None:
        self.bucket_name = os.getenv("AWS_BUCKET_NAME", "")
        access_key = os.getenv("AWS_ACCESS_KEY", "")
        secret_key = os.getenv("AWS_SECRET_KEY", "")
        missing = [name for name, value in (
            ("AWS_BUCKET_NAME", self.bucket_name),
            ("AWS_ACCESS_KEY", access_key),
            ("AWS_SECRET_KEY", secret_key),
        ) if not value]
        if missing:
            raise MissingCredentialsError(*missing)

        self.endpoint = os.getenv("AWS_ENDPOINT", "")
        self.region = os.getenv("AWS_REGION", "")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=BotoConfig(s3={"addressing_style": "path"}),
        )
        logger.debug(f"[s3 backend] using bucket {self.bucket_name} at {self.endpoint or 'aws'}")

    @staticmethod
    def _key(*parts: str) -> str:
        return posixpath.join(CLUSTERS_PREFIX, *parts)

    def _put(self, operation: str, key: str, body: bytes) -> None:
        try:
            self.client.put_object(Bucket=self.bucket_name, Key=key, Body=body)
        except (BotoCoreError, ClientError) as e:
            raise BackendError(operation, f"couldn't upload object {key}: {e}") from e

    def read(self, cluster_name: str) -> Dict[str, Any]:
        key = self._key(cluster_name, STATE_FILE)
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
            body = response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise StateNotFoundError(cluster_name) from e
            raise BackendError("read state", f"couldn't download object {key}: {e}") from e
        except BotoCoreError as e:
            raise BackendError("read state", f"couldn't download object {key}: {e}") from e

        try:
            return yaml.safe_load(body) or {}
        except yaml.YAMLError as e:
            raise BackendError("read state", f"invalid state object {key}: {e}") from e

    def write_config(self, cluster_name: str, config: Dict[str, Any]) -> None:
        self._put("write state", self._key(cluster_name, STATE_FILE), to_yaml(config).encode("utf-8"))

    def delete(self, cluster_name: str) -> None:
        prefix = self._key(cluster_name) + "/"
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            keys = [
                {"Key": obj["Key"]}
                for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix)
                for obj in page.get("Contents", [])
            ]
            # delete_objects takes at most 1000 keys per call
            for start in range(0, len(keys), 1000):
                self.client.delete_objects(Bucket=self.bucket_name, Delete={"Objects": keys[start:start + 1000]})
        except (BotoCoreError, ClientError) as e:
            raise BackendError("delete state", f"couldn't delete objects under {prefix}: {e}") from e
        logger.debug(f"[s3 backend] deleted {len(keys)} objects under {prefix}")

    def list_clusters(self) -> Dict[str, Dict[str, Any]]:
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            names = [
                prefix["Prefix"][len(CLUSTERS_PREFIX) + 1:].rstrip("/")
                for page in paginator.paginate(Bucket=self.bucket_name, Prefix=CLUSTERS_PREFIX + "/", Delimiter="/")
                for prefix in page.get("CommonPrefixes", [])
            ]
        except (BotoCoreError, ClientError) as e:
            raise BackendError("list clusters", str(e)) from e

        clusters: Dict[str, Dict[str, Any]] = {}
        for name in names:
            try:
                clusters[name] = self.read(name)
            except StateNotFoundError:
                logger.warning(f"⚠️  {self._key(name)} has no state file, skipping")
        return clusters

    def upload_file(self, cluster_name: str, init_file: InitFile) -> str:
        if not init_file.content:
            raise BackendError("upload file", f"{init_file.path} has no content")
        key = self._key(cluster_name, "files", init_file.path.lstrip("/"))
        content = init_file.content
        self._put("upload file", key, content if isinstance(content, bytes) else content.encode("utf-8"))
        try:
            url = self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=PRESIGN_EXPIRES,
            )
        except (BotoCoreError, ClientError) as e:
            raise BackendError("upload file", f"couldn't presign {key}: {e}") from e
        return download_command(url, init_file)
