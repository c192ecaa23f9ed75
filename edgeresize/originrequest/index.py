import dataclasses
import datetime
import logging
import sys
import time
from http import HTTPStatus
from logging import Logger
from typing import Any, Optional

import boto3
from pythonjsonlogger.json import JsonFormatter

import edgeresize
from edgeresize.typing import CacheUrl, OriginRequestEvent, Request, ResponseResult, S3Key

from .cache import (
    DEFAULT_MEMORY_CACHE_ENTRIES,
    CacheCoordinator,
    EdgeCache,
    MemoryEdgeCache,
    S3EdgeCache
)
from .errors import ConfigError, Forbidden, GatewayError, ResponseTooLarge, ValidationError
from .fetcher import DEFAULT_SOURCE_KEY, AssetFetcher, S3AssetFetcher
from .query import DEFAULT_MAX_DIMENSION, ResizeQuery
from .response import InstantResponse
from .signature import (
    DEFAULT_SECRET_NAME,
    SecretProvider,
    SecretsManagerSecretProvider,
    SignatureScheme,
    verify
)
from .transform import PNG_MIME, transform

DEFAULT_RESP_MAX_AGE = 7 * 24 * 60 * 60
DEFAULT_ERROR_MAX_AGE = 0
# Lambda@Edge rejects generated responses over 1 MB, headers included.
DEFAULT_MAX_BODY_SIZE = 1_000_000

switches = {
    'on': True,
    'true': True,
    'off': False,
    'false': False,
}


class MyJsonFormatter(JsonFormatter):

  def __init__(self) -> None:
    super().__init__(json_ensure_ascii=False)

  def add_fields(self, log_record: Any, record: Any, message_dict: Any) -> None:
    log_record['_ts'] = datetime.datetime.now(datetime.UTC).strftime('%Y-%m-%dT%H:%M:%S.%fZ')

    if log_record.get('level'):
      log_record['level'] = log_record['level'].upper()
    else:
      log_record['level'] = record.levelname

    log_record['version'] = edgeresize.version

    super().add_fields(log_record, record, message_dict)


def init_logging() -> Logger:
  # https://stackoverflow.com/a/11548754/1160341
  logger = logging.getLogger()
  logger.setLevel(logging.DEBUG)
  for h in logger.handlers:
    logger.removeHandler(h)

  logging.getLogger('botocore').setLevel(logging.WARNING)
  logging.getLogger('urllib3').setLevel(logging.INFO)
  logging.getLogger('pyvips').setLevel(logging.WARNING)

  log = logging.getLogger(__name__)
  log_handler = logging.StreamHandler()
  log_handler.setFormatter(MyJsonFormatter())
  log_handler.setLevel(logging.DEBUG)
  log_handler.setStream(sys.stderr)
  log.addHandler(log_handler)
  log.propagate = False

  return log


logger = init_logging()


def get_header(req: Request, name: str) -> str:
  return req['origin']['s3']['customHeaders'][name][0]['value']


def get_header_or(req: Request, name: str, default: str = '') -> str:
  return (get_header(req, name) if name in req['origin']['s3']['customHeaders'] else default)


def parse_switch(name: str, value: str) -> bool:
  try:
    return switches[value.lower()]
  except KeyError:
    raise ConfigError(f'invalid switch: {name}: {value}')


def parse_int(name: str, value: str) -> int:
  try:
    n = int(value)
  except ValueError:
    raise ConfigError(f'invalid integer: {name}: {value}')
  if n < 0:
    raise ConfigError(f'negative integer: {name}: {value}')
  return n


def encoded_size(body: bytes) -> int:
  return 4 * ((len(body) + 2) // 3)


def request_url(host: str, uri: str, qstr: str) -> CacheUrl:
  if qstr == '':
    return CacheUrl(f'https://{host}{uri}')
  return CacheUrl(f'https://{host}{uri}?{qstr}')


@dataclasses.dataclass(eq=True, frozen=True)
class GatewayParams:
  region: str
  source_bucket: str
  source_key: S3Key
  signature: bool
  signature_scheme: SignatureScheme
  secret_name: str
  edge_cache: bool
  cache_backend: str
  cache_bucket: str
  cache_key_prefix: str
  cache_max_entries: int
  strict_params: bool
  max_dimension: int
  resp_max_age: int
  error_max_age: int
  max_body_size: int

  @classmethod
  def from_request(cls, req: Request) -> 'GatewayParams':
    try:
      region = get_header(req, 'x-env-region')
      source_bucket = get_header_or(
          req, 'x-env-source-bucket', req['origin']['s3']['domainName'].split('.', 1)[0])
      source_key = S3Key(get_header_or(req, 'x-env-source-key', DEFAULT_SOURCE_KEY))
      signature = get_header_or(req, 'x-env-signature', 'off')
      signature_scheme = get_header_or(req, 'x-env-signature-scheme', SignatureScheme.HMAC.value)
      secret_name = get_header_or(req, 'x-env-secret-name', DEFAULT_SECRET_NAME)
      edge_cache = get_header_or(req, 'x-env-edge-cache', 'off')
      cache_backend = get_header_or(req, 'x-env-cache-backend', 's3')
      cache_bucket = get_header_or(req, 'x-env-cache-bucket')
      cache_key_prefix = get_header_or(req, 'x-env-cache-key-prefix')
      cache_max_entries = get_header_or(
          req, 'x-env-cache-max-entries', str(DEFAULT_MEMORY_CACHE_ENTRIES))
      strict_params = get_header_or(req, 'x-env-strict-params', 'on')
      max_dimension = get_header_or(req, 'x-env-max-dimension', str(DEFAULT_MAX_DIMENSION))
      resp_max_age = get_header_or(req, 'x-env-resp-max-age', str(DEFAULT_RESP_MAX_AGE))
      error_max_age = get_header_or(req, 'x-env-error-max-age', str(DEFAULT_ERROR_MAX_AGE))
      max_body_size = get_header_or(req, 'x-env-max-body-size', str(DEFAULT_MAX_BODY_SIZE))
    except KeyError as e:
      raise ConfigError(f'environment variable not found: {e}')

    try:
      scheme = SignatureScheme(signature_scheme)
    except ValueError:
      raise ConfigError(f'invalid signature scheme: {signature_scheme}')

    params = cls(
        region=region,
        source_bucket=source_bucket,
        source_key=source_key,
        signature=parse_switch('x-env-signature', signature),
        signature_scheme=scheme,
        secret_name=secret_name,
        edge_cache=parse_switch('x-env-edge-cache', edge_cache),
        cache_backend=cache_backend,
        cache_bucket=cache_bucket,
        cache_key_prefix=cache_key_prefix,
        cache_max_entries=parse_int('x-env-cache-max-entries', cache_max_entries),
        strict_params=parse_switch('x-env-strict-params', strict_params),
        max_dimension=parse_int('x-env-max-dimension', max_dimension),
        resp_max_age=parse_int('x-env-resp-max-age', resp_max_age),
        error_max_age=parse_int('x-env-error-max-age', error_max_age),
        max_body_size=parse_int('x-env-max-body-size', max_body_size))

    if params.max_dimension == 0:
      raise ConfigError('x-env-max-dimension must be positive')

    if params.max_body_size == 0:
      raise ConfigError('x-env-max-body-size must be positive')

    if params.edge_cache:
      if params.cache_backend not in ['s3', 'memory']:
        raise ConfigError(f'invalid cache backend: {params.cache_backend}')
      if params.cache_backend == 's3' and params.cache_bucket == '':
        raise ConfigError('environment variable not found: x-env-cache-bucket')
      if params.cache_backend == 'memory' and params.cache_max_entries == 0:
        raise ConfigError('x-env-cache-max-entries must be positive')

    return params


class ResizeGateway:
  instances: dict[GatewayParams, 'ResizeGateway'] = {}

  def __init__(
      self,
      log: logging.Logger,
      fetcher: AssetFetcher,
      source_key: S3Key,
      cache: CacheCoordinator,
      secret: Optional[str],
      signature_scheme: SignatureScheme = SignatureScheme.HMAC,
      strict_params: bool = True,
      max_dimension: int = DEFAULT_MAX_DIMENSION,
      resp_max_age: int = DEFAULT_RESP_MAX_AGE,
      error_max_age: int = DEFAULT_ERROR_MAX_AGE,
      max_body_size: int = DEFAULT_MAX_BODY_SIZE,
  ):
    if secret == '':
      raise ConfigError('empty secret')

    self.log = log
    self.fetcher = fetcher
    self.source_key = source_key
    self.cache = cache
    # None disables signature verification for the whole deployment.
    self.secret = secret
    self.signature_scheme = signature_scheme
    self.strict_params = strict_params
    self.max_dimension = max_dimension
    self.max_body_size = max_body_size
    self.log_context = {'url': '', 'method': '', 'qstr': ''}
    self.cache_control_perm = f'public, max-age={resp_max_age}'
    self.cache_control_error = f'public, max-age={error_max_age}'

  @classmethod
  def from_lambda(
      cls,
      log: Logger,
      req: Request,
      secret_provider: Optional[SecretProvider] = None,
  ) -> 'ResizeGateway':
    params = GatewayParams.from_request(req)

    if params not in cls.instances:
      s3 = boto3.client('s3', region_name=params.region)

      secret = None
      if params.signature:
        if secret_provider is None:
          secret_provider = SecretsManagerSecretProvider.from_region(log, params.region)
        secret = secret_provider.get_secret(params.secret_name)

      backend: Optional[EdgeCache] = None
      if params.edge_cache:
        if params.cache_backend == 'memory':
          backend = MemoryEdgeCache(params.cache_max_entries)
        else:
          backend = S3EdgeCache(s3, params.cache_bucket, params.cache_key_prefix)

      cls.instances[params] = cls(
          log=log,
          fetcher=S3AssetFetcher(s3, params.source_bucket),
          source_key=params.source_key,
          cache=CacheCoordinator(log, backend),
          secret=secret,
          signature_scheme=params.signature_scheme,
          strict_params=params.strict_params,
          max_dimension=params.max_dimension,
          resp_max_age=params.resp_max_age,
          error_max_age=params.error_max_age,
          max_body_size=params.max_body_size)

    return cls.instances[params]

  def log_warning(self, message: str, dict: dict[str, Any]) -> None:
    self.log.warning({
        'message': message,
        **self.log_context,
        **dict,
    })

  def log_debug(self, message: str, dict: dict[str, Any]) -> None:
    self.log.debug({
        'message': message,
        **self.log_context,
        **dict,
    })

  def log_error(self, message: str, dict: dict[str, Any]) -> None:
    self.log.error({
        'message': message,
        **self.log_context,
        **dict,
    })

  def error_response(
      self,
      status: int,
      message: str,
      extra_headers: Optional[dict[str, str]] = None,
  ) -> InstantResponse:
    return InstantResponse.plain(status, message, self.cache_control_error, extra_headers)

  def render(self, qstr: str) -> InstantResponse:
    query = ResizeQuery.from_querystring(
        qstr, strict=self.strict_params, max_dimension=self.max_dimension)

    # Must stay ahead of any storage access or image work.
    if self.secret is not None and not verify(
        query.canonical(), query.token, self.secret, self.signature_scheme):
      raise Forbidden(f'token mismatch for {query.canonical()}')

    data = self.fetcher.fetch(self.source_key)

    start_ns = time.time_ns()
    png = transform(data, query.width, query.height)
    vips_us = (time.time_ns() - start_ns) // 1000

    self.log_debug(
        'resized', {
            'key': self.source_key,
            'width': query.width,
            'height': query.height,
            'src_size': len(data),
            'img_size': len(png),
            'vips_us': vips_us,
        })

    # Bodies go out base64-encoded.
    if self.max_body_size < encoded_size(png):
      raise ResponseTooLarge(encoded_size(png), self.max_body_size)

    return InstantResponse(
        status=HTTPStatus.OK,
        headers={
            'content-type': PNG_MIME,
            'cache-control': self.cache_control_perm,
        },
        body=png)

  def process(self, method: str, url: CacheUrl, qstr: str) -> InstantResponse:
    if method != 'GET':
      self.log_warning('method not allowed', {'stage': 'method'})
      return self.error_response(
          HTTPStatus.METHOD_NOT_ALLOWED, 'method not allowed', {'allow': 'GET'})

    cached = self.cache.probe(url)
    if cached is not None:
      self.log_debug('cache hit', {'status': cached.status})
      return cached

    try:
      res = self.render(qstr)
    except ValidationError as e:
      self.log_warning('invalid query', {'stage': e.stage, 'reason': str(e)})
      return self.error_response(e.status, e.public_message)
    except Forbidden as e:
      self.log_warning('invalid token', {'stage': e.stage, 'reason': str(e)})
      return self.error_response(e.status, e.public_message)
    except GatewayError as e:
      self.log_error('failed to process', {'stage': e.stage, 'reason': str(e)})
      return self.error_response(e.status, e.public_message)
    except Exception as e:
      self.log_error('error during process()', {'stage': 'unknown', 'reason': str(e)})
      return self.error_response(HTTPStatus.INTERNAL_SERVER_ERROR, 'internal server error')

    if self.cache.store(url, res):
      self.log_debug('cache stored', {})

    return res

  def set_log_context(self, url: CacheUrl, method: str, qstr: str) -> None:
    self.log_context = {'url': url, 'method': method, 'qstr': qstr}


def lambda_main(
    event: OriginRequestEvent,
    secret_provider: Optional[SecretProvider] = None,
) -> ResponseResult:
  cf = event['Records'][0]['cf']
  req = cf['request']

  try:
    server = ResizeGateway.from_lambda(logger, req, secret_provider)
  except ConfigError as e:
    logger.error({
        'message': 'invalid configuration',
        'stage': e.stage,
        'reason': str(e),
        'uri': req['uri'],
    })
    return InstantResponse.plain(
        HTTPStatus.INTERNAL_SERVER_ERROR, e.public_message,
        f'public, max-age={DEFAULT_ERROR_MAX_AGE}').to_result()

  host = req['headers']['host'][0]['value'] if 'host' in req['headers'] else cf['config'][
      'distributionDomainName']
  qstr = req['querystring']
  url = request_url(host, req['uri'], qstr)

  server.set_log_context(url, req['method'], qstr)
  result = server.process(req['method'], url, qstr)

  server.log_debug(
      'responded', {
          'status': result.status,
          'cache_control': result.headers.get('cache-control'),
          'content_type': result.headers.get('content-type'),
          'img_size': len(result.body),
      })

  return result.to_result()
