from typing import Literal, NewType, NotRequired, TypedDict

HttpPath = NewType('HttpPath', str)
S3Key = NewType('S3Key', str)
CacheUrl = NewType('CacheUrl', str)


class Header(TypedDict):
  key: NotRequired[str]
  value: str


class S3Origin(TypedDict):
  customHeaders: dict[str, list[Header]]
  domainName: str
  path: str
  readTimeout: int
  responseCompletionTimeout: int
  authMethod: Literal['origin-access-identity', 'none']
  region: NotRequired[str]


class Origin(TypedDict):
  s3: NotRequired[S3Origin]


class Request(TypedDict):
  method: Literal['GET', 'HEAD', 'OPTIONS', 'TRACE', 'PUT', 'DELETE', 'POST', 'PATCH', 'CONNECT']
  uri: HttpPath
  querystring: str
  headers: dict[str, list[Header]]
  clientIp: str
  origin: Origin


class OriginRequestConfig(TypedDict):
  distributionDomainName: str
  distributionId: str
  eventType: Literal['origin-request']
  requestId: str


class OriginRequestRecord(TypedDict):
  config: OriginRequestConfig
  request: Request


class OriginRequestRecordContainer(TypedDict):
  cf: OriginRequestRecord


class OriginRequestEvent(TypedDict):
  Records: list[OriginRequestRecordContainer]


class ResponseResult(TypedDict):
  body: NotRequired[str]
  bodyEncoding: NotRequired[Literal['text', 'base64']]
  headers: NotRequired[dict[str, list[Header]]]
  status: str
  statusDescription: NotRequired[str]
