import dataclasses
from typing import Optional
from urllib import parse

from .errors import (
    DegenerateDimension,
    DimensionTooLarge,
    InvalidNumber,
    MissingParameter
)

DEFAULT_MAX_DIMENSION = 4096

WIDTH = 'width'
HEIGHT = 'height'
TOKEN = 'token'

aliases = {
    'width': WIDTH,
    'w': WIDTH,
    'height': HEIGHT,
    'h': HEIGHT,
    'token': TOKEN,
}


def parse_dimension(name: str, raw: str) -> int:
  # int() would also accept '+1', ' 1', '1_000' and non-ASCII digits.
  if raw == '' or not raw.isascii() or not raw.isdigit():
    raise InvalidNumber(name, raw)
  try:
    return int(raw)
  except ValueError:
    # Exceeds the interpreter's integer string conversion limit.
    raise InvalidNumber(name, raw)


def fold_pairs(pairs: list[tuple[str, str]]) -> dict[str, str]:
  folded: dict[str, str] = {}
  for k, v in pairs:
    name = aliases.get(k)
    if name is not None:
      folded[name] = v
  return folded


@dataclasses.dataclass(eq=True, frozen=True)
class ResizeQuery:
  width: int
  height: int
  token: Optional[str] = None

  @classmethod
  def from_querystring(
      cls,
      qstr: str,
      strict: bool = True,
      max_dimension: int = DEFAULT_MAX_DIMENSION,
  ) -> 'ResizeQuery':
    folded = fold_pairs(parse.parse_qsl(qstr, keep_blank_values=True))

    dims: dict[str, int] = {}
    for name in [WIDTH, HEIGHT]:
      if name not in folded:
        if strict:
          raise MissingParameter(name)
        dims[name] = 0
        continue
      dims[name] = parse_dimension(name, folded[name])

    query = cls(dims[WIDTH], dims[HEIGHT], folded.get(TOKEN))
    query.validate(max_dimension)
    return query

  def validate(self, max_dimension: int) -> None:
    for name, value in [(WIDTH, self.width), (HEIGHT, self.height)]:
      if value < 0:
        raise InvalidNumber(name, str(value))
      if value == 0:
        raise DegenerateDimension(name)
      if max_dimension < value:
        raise DimensionTooLarge(name, value, max_dimension)

  def canonical(self) -> str:
    return canonical_params(self.width, self.height)


def canonical_params(width: int, height: int) -> str:
  # Signed URLs already issued were computed over exactly this string.
  return f'/?width={width}&height={height}'
