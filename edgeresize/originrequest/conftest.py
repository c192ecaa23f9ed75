import logging
from logging import Logger
from pathlib import Path
from typing import Callable, Generator

import pytest
from pyvips import Image  # type: ignore

from .index import MyJsonFormatter

SOURCE_SIZE = 512


def new_image(width: int, height: int, bands: int = 3) -> Image:
  image = Image.black(width, height, bands=bands) + [200, 120, 40, 255][:bands]
  # A horizontal gradient so that resampling has something to work on.
  image = image * (Image.xyz(width, height)[0] / max(width - 1, 1))
  interpretation = 'srgb' if 3 <= bands else 'b-w'
  return image.cast('uchar').copy(interpretation=interpretation)


@pytest.fixture
def logger(tmp_path: Path) -> Generator[Logger, None, None]:
  log = logging.getLogger(f'{__name__}.{tmp_path.name}')
  log.setLevel(logging.DEBUG)

  log_file = open(tmp_path / 'test.log', 'w')
  log_handler = logging.StreamHandler()
  log_handler.setFormatter(MyJsonFormatter())
  log_handler.setLevel(logging.DEBUG)
  log_handler.setStream(log_file)
  log.addHandler(log_handler)

  yield log

  log.removeHandler(log_handler)
  log_file.close()


@pytest.fixture
def make_source() -> Callable[..., bytes]:

  def fn(suffix: str = '.jpg', width: int = SOURCE_SIZE, height: int = SOURCE_SIZE,
         bands: int = 3) -> bytes:
    data: bytes = new_image(width, height, bands).write_to_buffer(suffix)
    return data

  return fn


@pytest.fixture
def source_jpg(make_source: Callable[..., bytes]) -> bytes:
  return make_source('.jpg')
