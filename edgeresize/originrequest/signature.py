import hashlib
import hmac
import os
from enum import Enum
from logging import Logger
from typing import Mapping, Optional, Protocol

import boto3
from botocore.exceptions import ClientError
from mypy_boto3_secretsmanager.client import SecretsManagerClient

from .errors import ConfigError

DEFAULT_SECRET_NAME = 'TOKEN_SECRET'


class SignatureScheme(Enum):
  # hex(HMAC-SHA256(key=secret, msg=params + '$' + secret))
  HMAC = 'hmac'
  # hex(SHA256(params + '$' + secret)), tokens issued by the first generator
  DIGEST = 'digest'


def sign(params: str, secret: str, scheme: SignatureScheme = SignatureScheme.HMAC) -> str:
  # The secret is mixed in twice on purpose. Changing this invalidates every
  # signed URL already handed out.
  msg = f'{params}${secret}'.encode()
  match scheme:
    case SignatureScheme.HMAC:
      return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()
    case SignatureScheme.DIGEST:
      return hashlib.sha256(msg).hexdigest()
    case _:
      raise Exception('system error')


def verify(
    params: str,
    token: Optional[str],
    secret: str,
    scheme: SignatureScheme = SignatureScheme.HMAC,
) -> bool:
  if not token:
    return False

  expected = sign(params, secret, scheme)
  return hmac.compare_digest(expected.encode(), token.encode())


class SecretProvider(Protocol):

  def get_secret(self, name: str) -> str:
    ...


class EnvSecretProvider:

  def __init__(self, environ: Optional[Mapping[str, str]] = None):
    self.environ = os.environ if environ is None else environ

  def get_secret(self, name: str) -> str:
    value = self.environ.get(name, '')
    if value == '':
      raise ConfigError(f'secret not found in environment: {name}')
    return value


class SecretsManagerSecretProvider:
  # Values are kept until the next cold start.

  def __init__(self, log: Logger, client: SecretsManagerClient):
    self.log = log
    self.client = client
    self.values: dict[str, str] = {}

  @classmethod
  def from_region(cls, log: Logger, region: str) -> 'SecretsManagerSecretProvider':
    return cls(log, boto3.client('secretsmanager', region_name=region))

  def get_secret(self, name: str) -> str:
    if name in self.values:
      return self.values[name]

    try:
      res = self.client.get_secret_value(SecretId=name)
    except ClientError as e:
      self.log.error({
          'message': 'failed to get secret',
          'name': name,
          'reason': str(e),
      })
      raise ConfigError(f'failed to get secret: {name}') from e

    if 'SecretString' not in res or res['SecretString'] == '':
      raise ConfigError(f'secret has no string value: {name}')

    self.values[name] = res['SecretString']
    return self.values[name]
