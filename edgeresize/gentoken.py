"""
Print the token for a resize request, or a complete signed URL.

    TOKEN_SECRET=... python -m edgeresize.gentoken --width 100 --height 200
"""

import argparse
import sys
from typing import Optional, Sequence
from urllib import parse

from edgeresize.originrequest.errors import ConfigError, ValidationError
from edgeresize.originrequest.query import ResizeQuery, canonical_params
from edgeresize.originrequest.signature import (
    DEFAULT_SECRET_NAME,
    EnvSecretProvider,
    SecretProvider,
    SignatureScheme,
    sign
)


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(description='Generate a signed resize token.')
  parser.add_argument('--width', type=int, required=True)
  parser.add_argument('--height', type=int, required=True)
  parser.add_argument(
      '--scheme',
      choices=[s.value for s in SignatureScheme],
      default=SignatureScheme.HMAC.value,
  )
  parser.add_argument(
      '--secret-env',
      default=DEFAULT_SECRET_NAME,
      help='environment variable holding the secret',
  )
  parser.add_argument('--url', help='base URL; print a full signed URL instead of the token')
  return parser


def signed_url(base: str, width: int, height: int, token: str) -> str:
  qstr = parse.urlencode({'width': width, 'height': height, 'token': token})
  return f'{base.rstrip("/")}/?{qstr}'


def main(argv: Optional[Sequence[str]] = None, secrets: Optional[SecretProvider] = None) -> int:
  args = build_parser().parse_args(argv)
  secrets = EnvSecretProvider() if secrets is None else secrets

  try:
    # Refuse tokens the gateway would reject anyway.
    ResizeQuery(args.width, args.height).validate(sys.maxsize)
    secret = secrets.get_secret(args.secret_env)
  except (ConfigError, ValidationError) as e:
    print(f'error: {e}', file=sys.stderr)
    return 1

  token = sign(canonical_params(args.width, args.height), secret, SignatureScheme(args.scheme))

  if args.url is None:
    print(token)
  else:
    print(signed_url(args.url, args.width, args.height, token))

  return 0


if __name__ == '__main__':
  sys.exit(main())
