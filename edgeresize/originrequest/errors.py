from http import HTTPStatus


class GatewayError(Exception):
  # str(e) goes to the log only. Clients see public_message.
  status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
  public_message: str = 'internal server error'
  stage: str = 'unknown'


class ConfigError(GatewayError):
  stage = 'config'


class ValidationError(GatewayError):
  status = HTTPStatus.BAD_REQUEST
  public_message = 'invalid query'
  stage = 'validate'


class MissingParameter(ValidationError):

  def __init__(self, name: str):
    super().__init__(f'missing parameter: {name}')
    self.name = name


class InvalidNumber(ValidationError):

  def __init__(self, name: str, raw_value: str):
    super().__init__(f'invalid number: {name}={raw_value!r}')
    self.name = name
    self.raw_value = raw_value


class DegenerateDimension(ValidationError):

  def __init__(self, name: str):
    super().__init__(f'degenerate dimension: {name}=0')
    self.name = name


class DimensionTooLarge(ValidationError):

  def __init__(self, name: str, value: int, limit: int):
    super().__init__(f'dimension too large: {name}={value} (limit: {limit})')
    self.name = name
    self.value = value
    self.limit = limit


class Forbidden(GatewayError):
  status = HTTPStatus.FORBIDDEN
  public_message = 'invalid token'
  stage = 'verify'


class AssetNotFound(GatewayError):
  status = HTTPStatus.NOT_FOUND
  public_message = 'image not found'
  stage = 'fetch'


class StorageError(GatewayError):
  stage = 'fetch'


class DecodeError(GatewayError):
  stage = 'decode'


class EncodeError(GatewayError):
  stage = 'encode'


class ResponseTooLarge(GatewayError):
  stage = 'respond'

  def __init__(self, size: int, limit: int):
    super().__init__(f'encoded body too large: {size} bytes (limit: {limit})')
    self.size = size
    self.limit = limit


class CacheError(Exception):
  pass
