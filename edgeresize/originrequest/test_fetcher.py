import io
from typing import Generator, Tuple

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber
from mypy_boto3_s3.client import S3Client

from edgeresize.typing import S3Key

from .errors import AssetNotFound, StorageError
from .fetcher import DEFAULT_SOURCE_KEY, S3AssetFetcher

BUCKET = 'original-bucket'


def new_s3_client() -> S3Client:
  return boto3.client(
      's3', region_name='us-east-1', aws_access_key_id='testing', aws_secret_access_key='testing')


def streaming_body(data: bytes) -> StreamingBody:
  return StreamingBody(io.BytesIO(data), len(data))


@pytest.fixture
def s3_stub() -> Generator[Tuple[S3Client, Stubber], None, None]:
  s3 = new_s3_client()
  with Stubber(s3) as stubber:
    yield s3, stubber


def test_fetch(s3_stub: Tuple[S3Client, Stubber], source_jpg: bytes) -> None:
  s3, stubber = s3_stub
  stubber.add_response(
      'get_object',
      {
          'Body': streaming_body(source_jpg),
          'ContentType': 'image/jpeg',
      },
      {
          'Bucket': BUCKET,
          'Key': DEFAULT_SOURCE_KEY,
      },
  )

  assert source_jpg == S3AssetFetcher(s3, BUCKET).fetch(DEFAULT_SOURCE_KEY)
  stubber.assert_no_pending_responses()


def test_fetch_other_key(s3_stub: Tuple[S3Client, Stubber]) -> None:
  s3, stubber = s3_stub
  stubber.add_response(
      'get_object', {'Body': streaming_body(b'abc')}, {
          'Bucket': BUCKET,
          'Key': 'avatars/default.png',
      })

  assert b'abc' == S3AssetFetcher(s3, BUCKET).fetch(S3Key('avatars/default.png'))


@pytest.mark.parametrize(
    'code,status', [
        ('NoSuchKey', 404),
        ('404', 404),
    ], ids=['no_such_key', 'head_style'])
def test_fetch_not_found(s3_stub: Tuple[S3Client, Stubber], code: str, status: int) -> None:
  s3, stubber = s3_stub
  stubber.add_client_error('get_object', service_error_code=code, http_status_code=status)

  with pytest.raises(AssetNotFound) as e:
    S3AssetFetcher(s3, BUCKET).fetch(DEFAULT_SOURCE_KEY)

  assert 404 == e.value.status


@pytest.mark.parametrize(
    'code,status', [
        ('AccessDenied', 403),
        ('InternalError', 500),
        ('SlowDown', 503),
    ], ids=['access_denied', 'internal', 'throttled'])
def test_fetch_storage_error(s3_stub: Tuple[S3Client, Stubber], code: str, status: int) -> None:
  s3, stubber = s3_stub
  stubber.add_client_error('get_object', service_error_code=code, http_status_code=status)

  with pytest.raises(StorageError) as e:
    S3AssetFetcher(s3, BUCKET).fetch(DEFAULT_SOURCE_KEY)

  assert 500 == e.value.status
  assert code in str(e.value)
  assert code not in e.value.public_message
