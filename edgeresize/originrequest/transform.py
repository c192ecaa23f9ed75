import dataclasses

from pyvips import Error, Image, Interpretation, Kernel  # type: ignore

from .errors import DecodeError, EncodeError

PNG_MIME = 'image/png'


@dataclasses.dataclass(eq=True, frozen=True)
class Size:
  width: int
  height: int

  @classmethod
  def from_image(cls, image: Image) -> 'Size':
    return cls(image.get('width'), image.get('height'))


def decode(data: bytes) -> Image:
  try:
    # The loader is chosen from the leading bytes, never from a name or MIME type.
    image: Image = Image.new_from_buffer(data, '')
    # Loading is lazy; force pixels in so a truncated source fails here.
    image = image.copy_memory()
  except Error as e:
    raise DecodeError(f'failed to decode source: {e}') from e

  return image


def resize_exact(image: Image, target: Size) -> Image:
  original = Size.from_image(image)
  hscale = target.width / original.width
  vscale = target.height / original.height

  if image.interpretation == Interpretation.CMYK:
    image = image.colourspace(Interpretation.SRGB)

  if image.hasalpha():
    band_format = image.format
    image = image.premultiply()
    image = image.resize(hscale, vscale=vscale, kernel=Kernel.LANCZOS3)
    image = image.unpremultiply().cast(band_format)
  else:
    image = image.resize(hscale, vscale=vscale, kernel=Kernel.LANCZOS3)

  return image


def transform(data: bytes, width: int, height: int) -> bytes:
  image = decode(data)
  target = Size(width, height)

  try:
    resized = resize_exact(image, target)
    if Size.from_image(resized) != target:
      raise EncodeError(f'resized to {Size.from_image(resized)}, expected {target}')
    png: bytes = resized.write_to_buffer('.png')
  except Error as e:
    raise EncodeError(f'failed to encode png: {e}') from e

  return png
