from typing import Protocol

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3.client import S3Client

from edgeresize.typing import S3Key

from .errors import AssetNotFound, StorageError

DEFAULT_SOURCE_KEY = S3Key('icon.jpg')


def is_not_found_client_error(exception: ClientError) -> bool:
  if 'Error' not in exception.response:
    return False
  if 'Code' not in exception.response['Error']:
    return False
  return exception.response['Error']['Code'] in ['404', 'NoSuchKey']


class AssetFetcher(Protocol):

  def fetch(self, key: S3Key) -> bytes:
    ...


class S3AssetFetcher:

  def __init__(self, s3: S3Client, bucket: str):
    self.s3 = s3
    self.bucket = bucket

  def fetch(self, key: S3Key) -> bytes:
    try:
      res = self.s3.get_object(Bucket=self.bucket, Key=key)
      return b''.join(res['Body'].iter_chunks())
    except ClientError as e:
      if is_not_found_client_error(e):
        raise AssetNotFound(f'no such key: s3://{self.bucket}/{key}') from e
      raise StorageError(f'failed to get s3://{self.bucket}/{key}: {e}') from e
    except BotoCoreError as e:
      raise StorageError(f'failed to get s3://{self.bucket}/{key}: {e}') from e
