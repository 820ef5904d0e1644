"""Testing utilities and fakes for the photo ingestion pipeline."""

from .fakes import (
    FakeDriveServer,
    FakeDynamoDBClient,
    FakeEventDirectory,
    FakeLogoSource,
    FakeRekognitionClient,
    FakeS3Client,
    FakeStatsSink,
    S3Bucket,
    S3Object,
    create_test_image,
    create_test_logo,
    create_test_settings,
    drive_id,
    make_client_error,
    setup_test_aws_environment,
)

__all__ = [
    "FakeDriveServer",
    "FakeDynamoDBClient",
    "FakeEventDirectory",
    "FakeLogoSource",
    "FakeRekognitionClient",
    "FakeS3Client",
    "FakeStatsSink",
    "S3Bucket",
    "S3Object",
    "create_test_image",
    "create_test_logo",
    "create_test_settings",
    "drive_id",
    "make_client_error",
    "setup_test_aws_environment",
]
