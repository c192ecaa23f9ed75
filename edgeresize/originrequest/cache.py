import hashlib
import json
from collections import OrderedDict
from logging import Logger
from typing import Any, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3.client import S3Client

from edgeresize.typing import CacheUrl, S3Key

from .errors import CacheError
from .fetcher import is_not_found_client_error
from .response import InstantResponse

STATUS_METADATA = 'response-status'
HEADERS_METADATA = 'response-headers'
URL_METADATA = 'request-url'
DEFAULT_MEMORY_CACHE_ENTRIES = 64


class EdgeCache(Protocol):

  def get(self, url: CacheUrl) -> Optional[InstantResponse]:
    ...

  def put(self, url: CacheUrl, response: InstantResponse) -> None:
    ...


class MemoryEdgeCache:
  # Lives as long as the warm container. Least recently used entries go first.

  def __init__(self, max_entries: int = DEFAULT_MEMORY_CACHE_ENTRIES):
    self.max_entries = max_entries
    self.entries: OrderedDict[CacheUrl, InstantResponse] = OrderedDict()

  def get(self, url: CacheUrl) -> Optional[InstantResponse]:
    res = self.entries.get(url)
    if res is None:
      return None
    self.entries.move_to_end(url)
    return res.clone()

  def put(self, url: CacheUrl, response: InstantResponse) -> None:
    self.entries[url] = response.clone()
    self.entries.move_to_end(url)
    while self.max_entries < len(self.entries):
      self.entries.popitem(last=False)


def json_dump(obj: Any) -> str:
  return json.dumps(obj, separators=(',', ':'), sort_keys=True)


class S3EdgeCache:

  def __init__(self, s3: S3Client, bucket: str, key_prefix: str):
    self.s3 = s3
    self.bucket = bucket
    self.key_prefix = key_prefix

  def key_from_url(self, url: CacheUrl) -> S3Key:
    # URLs may exceed the S3 key length limit.
    return S3Key(f'{self.key_prefix}{hashlib.sha256(url.encode()).hexdigest()}')

  def get(self, url: CacheUrl) -> Optional[InstantResponse]:
    key = self.key_from_url(url)
    try:
      res = self.s3.get_object(Bucket=self.bucket, Key=key)
      body = b''.join(res['Body'].iter_chunks())
    except ClientError as e:
      if is_not_found_client_error(e):
        return None
      raise CacheError(f'failed to get s3://{self.bucket}/{key}: {e}') from e
    except BotoCoreError as e:
      raise CacheError(f'failed to get s3://{self.bucket}/{key}: {e}') from e

    metadata = res['Metadata']
    # Guards against a sha256 collision and foreign objects under the prefix.
    if metadata.get(URL_METADATA) != url:
      return None

    try:
      status = int(metadata[STATUS_METADATA])
      headers = json.loads(metadata[HEADERS_METADATA])
    except (KeyError, ValueError) as e:
      raise CacheError(f'invalid cache metadata: s3://{self.bucket}/{key}: {e}') from e

    return InstantResponse(status=status, headers=headers, body=body)

  def put(self, url: CacheUrl, response: InstantResponse) -> None:
    key = self.key_from_url(url)
    try:
      self.s3.put_object(
          Body=response.body,
          Bucket=self.bucket,
          ContentType=response.headers.get('content-type', 'application/octet-stream'),
          Key=key,
          Metadata={
              STATUS_METADATA: str(response.status),
              HEADERS_METADATA: json_dump(response.headers),
              URL_METADATA: url,
          })
    except (ClientError, BotoCoreError) as e:
      raise CacheError(f'failed to put s3://{self.bucket}/{key}: {e}') from e


class CacheCoordinator:
  # Backend failures are logged. A failed probe counts as a miss.

  def __init__(self, log: Logger, backend: Optional[EdgeCache]):
    self.log = log
    self.backend = backend

  @property
  def enabled(self) -> bool:
    return self.backend is not None

  def probe(self, url: CacheUrl) -> Optional[InstantResponse]:
    if self.backend is None:
      return None

    try:
      cached = self.backend.get(url)
    except CacheError as e:
      self.log.error({'message': 'failed to get cache', 'url': url, 'reason': str(e)})
      return None

    if cached is None:
      self.log.debug({'message': 'cache not found', 'url': url})
    return cached

  def store(self, url: CacheUrl, response: InstantResponse) -> bool:
    if self.backend is None:
      return False

    try:
      self.backend.put(url, response.clone())
    except CacheError as e:
      self.log.error({'message': 'failed to put cache', 'url': url, 'reason': str(e)})
      return False

    return True
