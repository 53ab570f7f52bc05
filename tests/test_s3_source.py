"""Test the S3 bundle source against an in-memory bucket."""

import io

import pytest
from botocore.exceptions import ClientError

from bundle_engine.bundles.s3 import S3Source
from bundle_engine.bundles.source import BundleFile, BundleRef, new_source
from bundle_engine.core.errors import BundleNotFound, SourceError

from tests.helpers import app_document, write_bundle


class FakeS3Client:
    """The handful of S3 client calls the source makes."""

    def __init__(self):
        self.objects = {}

    def _missing(self, operation):
        return ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, operation)

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise self._missing("GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def put_object(self, Bucket, Key, Body):
        self.objects[(Bucket, Key)] = Body

    def download_fileobj(self, bucket, key, fileobj):
        if (bucket, key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        fileobj.write(self.objects[(bucket, key)])

    def upload_fileobj(self, fileobj, bucket, key):
        self.objects[(bucket, key)] = fileobj.read()


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def source(s3):
    return S3Source("bundles", {"bucket": "artifacts", "region": "us-east-1"}, "stable", "2024", client=s3)


class TestS3Source:
    """Test S3Source."""

    def test_put_then_get_latest(self, source, s3, tmp_path):
        """Test a published bundle is found as latest."""
        built = write_bundle(tmp_path, app_document("pg", version="2.0.0"))
        with BundleFile(str(built)) as bundle:
            source.put(bundle)

        assert ("artifacts", "bundles/stable/2024/pg-2.0.0.kb") in s3.objects
        with source.get(BundleRef("pg")) as bundle:
            assert bundle.version == "2.0.0"

    def test_missing_bundle(self, source):
        """Test missing objects map to BundleNotFound."""
        with pytest.raises(BundleNotFound):
            source.get(BundleRef("pg"))
        with pytest.raises(BundleNotFound):
            source.get(BundleRef("pg", "1.0.0"))

    def test_required_options(self, s3):
        """Test bucket and region are required."""
        with pytest.raises(SourceError):
            S3Source("bundles", {"region": "us-east-1"}, client=s3).get(BundleRef("pg", "1.0.0"))
        with pytest.raises(SourceError):
            S3Source("bundles", {"bucket": "artifacts"}).get(BundleRef("pg", "1.0.0"))

    def test_new_source(self):
        """Test the s3 type builds an S3Source."""
        assert isinstance(new_source("s3", "bundles", {"bucket": "b", "region": "r"}), S3Source)
