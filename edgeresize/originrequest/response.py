import base64
import dataclasses
from http import HTTPStatus
from typing import Optional

from edgeresize.typing import Header, ResponseResult

TEXT_MIME = 'text/plain; charset=utf-8'


def header_key(name: str) -> str:
  return '-'.join(p.capitalize() for p in name.split('-'))


@dataclasses.dataclass(frozen=True)
class InstantResponse:
  status: int
  headers: dict[str, str]
  body: bytes

  @classmethod
  def plain(
      cls,
      status: int,
      message: str,
      cache_control: str,
      extra_headers: Optional[dict[str, str]] = None,
  ) -> 'InstantResponse':
    return cls(
        status=status,
        headers={
            'content-type': TEXT_MIME,
            'cache-control': cache_control,
            **(extra_headers or {}),
        },
        body=message.encode())

  def clone(self) -> 'InstantResponse':
    return InstantResponse(status=self.status, headers=dict(self.headers), body=self.body)

  def to_result(self) -> ResponseResult:
    headers: dict[str, list[Header]] = {
        name: [{
            'key': header_key(name),
            'value': value,
        }] for name, value in self.headers.items()
    }

    result: ResponseResult = {
        'status': str(int(self.status)),
        'statusDescription': HTTPStatus(self.status).phrase,
        'headers': headers,
    }

    if self.headers.get('content-type', '').startswith('text/'):
      result['body'] = self.body.decode()
      result['bodyEncoding'] = 'text'
    else:
      result['body'] = base64.b64encode(self.body).decode()
      result['bodyEncoding'] = 'base64'

    return result
