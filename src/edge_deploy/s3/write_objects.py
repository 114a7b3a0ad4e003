"""Functions for writing objects to an S3 bucket."""

from typing import BinaryIO, Optional, Union

try:
    from mypy_boto3_s3 import S3Client
except ImportError:
    ...

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def upload_s3_object(
    bucket_name: str,
    object_key: str,
    file_content: Union[bytes, BinaryIO],
    content_type: Optional[str] = None,
    s3_client: Optional["S3Client"] = None,
    region: Optional[str] = None,
) -> None:
    """
    Upload a file to an S3 bucket, overwriting any object at the same key.

    :param bucket_name: The name of the S3 bucket.
    :param object_key: path to the object in the S3 bucket.
    :param file_content: The content of the file to upload, as bytes or an open binary stream.
    :param content_type: The MIME type of the file, e.g. "text/plain" for a text file.
    :param s3_client: An optional boto3 S3 client. If not provided, one will be created.
    :param region: Region used when a client has to be created.
    """
    content_type = content_type or DEFAULT_CONTENT_TYPE
    if s3_client is None:
        from edge_deploy.aws.utils import get_s3_client
        s3_client = get_s3_client(region)
    s3_client.put_object(
        Bucket=bucket_name,
        Key=object_key,
        Body=file_content,
        ContentType=content_type,
    )
