from typing import Optional, Type

import pytest

from .errors import (
    DegenerateDimension,
    DimensionTooLarge,
    InvalidNumber,
    MissingParameter,
    ValidationError
)
from .query import ResizeQuery, canonical_params


@pytest.mark.parametrize(
    'qstr,width,height,token', [
        ('width=100&height=200', 100, 200, None),
        ('w=100&h=200', 100, 200, None),
        ('h=200&width=100', 100, 200, None),
        ('width=1&width=100&h=200', 100, 200, None),
        ('w=1&width=100&height=3&h=200', 100, 200, None),
        ('width=100&height=200&blur=3&format=webp', 100, 200, None),
        ('width=100&height=200&token=abc', 100, 200, 'abc'),
        ('width=100&height=200&token=', 100, 200, ''),
        ('width=0100&height=0200', 100, 200, None),
        ('width=4096&height=4096', 4096, 4096, None),
    ],
    ids=[
        'plain',
        'aliases',
        'reordered',
        'last_wins',
        'last_wins/mixed_aliases',
        'unknown_ignored',
        'token',
        'token/empty',
        'leading_zeros',
        'max',
    ])
def test_from_querystring(qstr: str, width: int, height: int, token: Optional[str]) -> None:
  assert ResizeQuery(width, height, token) == ResizeQuery.from_querystring(qstr)


@pytest.mark.parametrize(
    'qstr,error,name', [
        ('height=200', MissingParameter, 'width'),
        ('width=100', MissingParameter, 'height'),
        ('', MissingParameter, 'width'),
        ('width=abc&height=200', InvalidNumber, 'width'),
        ('width=100&height=-5', InvalidNumber, 'height'),
        ('width=%2B5&height=200', InvalidNumber, 'width'),
        ('width=+5&height=200', InvalidNumber, 'width'),
        ('width=1.5&height=200', InvalidNumber, 'width'),
        ('width=1_000&height=200', InvalidNumber, 'width'),
        ('width=&height=200', InvalidNumber, 'width'),
        ('width&height=200', InvalidNumber, 'width'),
        ('width=%EF%BC%91&height=200', InvalidNumber, 'width'),
        ('width=0&height=200', DegenerateDimension, 'width'),
        ('width=100&h=0', DegenerateDimension, 'height'),
        ('width=4097&height=200', DimensionTooLarge, 'width'),
        ('width=100&height=99999999999999999999', DimensionTooLarge, 'height'),
    ],
    ids=[
        'missing/width',
        'missing/height',
        'missing/both',
        'invalid/alpha',
        'invalid/negative',
        'invalid/plus_sign',
        'invalid/space',
        'invalid/decimal',
        'invalid/underscore',
        'invalid/blank',
        'invalid/no_value',
        'invalid/fullwidth_digit',
        'degenerate/width',
        'degenerate/height',
        'too_large/width',
        'too_large/huge',
    ])
def test_from_querystring_error(qstr: str, error: Type[ValidationError], name: str) -> None:
  with pytest.raises(error) as e:
    ResizeQuery.from_querystring(qstr)

  assert name == getattr(e.value, 'name')


def test_from_querystring_relaxed() -> None:
  # Missing dimensions become 0 and are rejected as degenerate instead.
  with pytest.raises(DegenerateDimension):
    ResizeQuery.from_querystring('height=200', strict=False)

  assert ResizeQuery(1, 2) == ResizeQuery.from_querystring('w=1&h=2', strict=False)


def test_from_querystring_max_dimension() -> None:
  assert ResizeQuery(64, 64) == ResizeQuery.from_querystring('w=64&h=64', max_dimension=64)

  with pytest.raises(DimensionTooLarge) as e:
    ResizeQuery.from_querystring('w=64&h=65', max_dimension=64)

  assert (65, 64) == (e.value.value, e.value.limit)


def test_from_querystring_digit_flood() -> None:
  with pytest.raises(ValidationError):
    ResizeQuery.from_querystring(f'width={"9" * 10000}&height=1')


def test_invalid_number_keeps_raw_value() -> None:
  with pytest.raises(InvalidNumber) as e:
    ResizeQuery.from_querystring('width=12px&height=1')

  assert '12px' == e.value.raw_value


def test_canonical() -> None:
  assert '/?width=100&height=200' == canonical_params(100, 200)
  assert '/?width=100&height=200' == ResizeQuery(100, 200, 'token').canonical()


@pytest.mark.parametrize(
    'qstr', [
        'width=100&height=200',
        'w=100&h=200',
        'height=200&width=100',
        'h=200&w=100&token=deadbeef',
        'w=7&width=100&height=200&x=y',
    ])
def test_canonical_alias_invariant(qstr: str) -> None:
  assert '/?width=100&height=200' == ResizeQuery.from_querystring(qstr).canonical()
