"""S3 bucket bundle source."""

import json
import logging
import posixpath
import tempfile
from typing import Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from bundle_engine.core.errors import BundleNotFound, SourceError
from bundle_engine.bundles.source import (
    BundleFile,
    BundleRef,
    Source,
    latest_version,
    publish_metadata,
)
from bundle_engine.domain.models import LATEST

logger = logging.getLogger(__name__)


_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


class S3Source(Source):
    """
    Bundles stored under s3://<bucket>/<path>/<section>/<release>/.

    Options: `bucket` and `region` are required, `endpoint_url` is optional
    (MinIO, LocalStack and other S3-compatible services).
    """

    def __init__(
        self,
        path: str,
        options: Optional[Dict[str, str]] = None,
        section: str = "",
        release: str = "",
        client=None,
    ):
        self.path = path
        self.options = options or {}
        self.section = section
        self.release = release
        self._client = client

    @property
    def bucket(self) -> str:
        bucket = self.options.get("bucket", "")
        if not bucket:
            raise SourceError("missing bucket")
        return bucket

    @property
    def client(self):
        if self._client is None:
            region = self.options.get("region", "")
            if not region:
                raise SourceError("missing region")

            client_kwargs = {
                "service_name": "s3",
                "region_name": region,
                "config": Config(signature_version="s3v4"),
            }
            if self.options.get("endpoint_url"):
                client_kwargs["endpoint_url"] = self.options["endpoint_url"]

            self._client = boto3.client(**client_kwargs)
        return self._client

    def _key(self, filename: str) -> str:
        return posixpath.join(self.path, self.section, self.release, filename).lstrip("/")

    def get(self, ref: BundleRef) -> BundleFile:
        bucket = self.bucket
        version = ref.version

        if version == LATEST:
            metadata_key = self._key(ref.metadata_filename)
            try:
                response = self.client.get_object(Bucket=bucket, Key=metadata_key)
                metadata = json.loads(response["Body"].read())
            except ClientError as e:
                if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
                    raise BundleNotFound(f"no metadata file 's3://{bucket}/{metadata_key}'") from e
                raise SourceError(f"couldn't download metadata file 's3://{bucket}/{metadata_key}'") from e
            except ValueError as e:
                raise SourceError(f"couldn't decode metadata file 's3://{bucket}/{metadata_key}'") from e
            version = latest_version(metadata)

        resolved = BundleRef(ref.name, version)
        key = self._key(resolved.filename)
        logger.info(f"[source] downloading {resolved.name} {resolved.version} from s3://{bucket}/{key}")

        # TODO: remove the downloaded temp file when the bundle is closed
        with tempfile.NamedTemporaryFile(prefix=f"{resolved.filename}.", suffix=".kb", delete=False) as f:
            try:
                self.client.download_fileobj(bucket, key, f)
            except ClientError as e:
                if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
                    raise BundleNotFound(f"bundle 's3://{bucket}/{key}' not found") from e
                raise SourceError(f"couldn't download s3://{bucket}/{key}") from e

        return BundleFile(f.name)

    def put(self, bundle: BundleFile) -> None:
        bucket = self.bucket
        key = self._key(bundle.filename)

        try:
            with open(bundle.path, "rb") as f:
                self.client.upload_fileobj(f, bucket, key)

            metadata_key = self._key(bundle.metadata_filename)
            body = json.dumps(publish_metadata(bundle.version, bundle.size), indent=2).encode("utf-8")
            self.client.put_object(Bucket=bucket, Key=metadata_key, Body=body)
        except ClientError as e:
            raise SourceError(f"couldn't upload {bundle} to s3://{bucket}/{key}") from e

        logger.info(f"[source] published {bundle} to s3://{bucket}/{key}")
