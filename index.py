from aws_lambda_powertools.utilities.typing import LambdaContext

from edgeresize.originrequest import index as originrequest
from edgeresize.typing import OriginRequestEvent, ResponseResult


def origin_request_lambda_handler(
    event: OriginRequestEvent,
    _: LambdaContext,
) -> ResponseResult:
  # # For debugging
  # print('event:')
  # print(json.dumps(event))

  ret = originrequest.lambda_main(event)

  # # For debugging
  # print('return:')
  # print(json.dumps(ret))

  return ret
