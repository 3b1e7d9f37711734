import os
import subprocess
from typing import Any, Optional, Tuple

from pyvips import Image, Interesting  # type: ignore

from imgorigin.style import Fit, StyleDescriptor
from imgorigin.typing import ColorAnalysis

# libvips keeps the aspect ratio when one side of the box is unbounded.
UNBOUNDED = 10_000_000

ANALYSE_SIZE = 200
HISTOGRAM_BINS = 10

MIME_TYPES = {
    'jpg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
}

SOURCE_FORMATS = {
    '.jpg': 'jpg',
    '.jpeg': 'jpg',
    '.png': 'png',
    '.gif': 'gif',
    '.webp': 'webp',
}

VIDEO_FORMATS = frozenset(
    ['.mp4', '.m4v', '.mov', '.avi', '.webm', '.mkv', '.mpg', '.mpeg', '.flv', '.wmv', '.3gp'])


class UnsupportedStyle(Exception):
  pass


class VideoProcessingError(Exception):
  pass


def output_format(source: str, convert_to: Optional[str]) -> str:
  if convert_to is not None:
    return convert_to
  _, ext = os.path.splitext(source)
  return SOURCE_FORMATS.get(ext.lower(), 'jpg')


def save_options(fmt: str, quality: int) -> dict[str, Any]:
  match fmt:
    case 'jpg' | 'webp':
      return {'Q': quality}
    case 'png':
      return {'compression': 6}
    case _:
      return {}


def to_hex(rgb: list[float]) -> str:
  return '#' + ''.join(f'{max(0, min(255, round(c))):02x}' for c in rgb)


def to_srgb(image: Image) -> Image:
  image = image.colourspace('srgb')
  if image.bands > 3:
    image = image.extract_band(0, n=3)
  return image


class ImageProcessor:
  """Adapter around libvips for one source image."""

  def __init__(self, path: str):
    self.path = path
    self.image: Optional[Image] = None

  def resize(self, style: StyleDescriptor) -> Image:
    match style.fit:
      case Fit.ORIGINAL:
        return Image.new_from_file(self.path)
      case Fit.WIDTH:
        assert style.width is not None
        return Image.thumbnail(self.path, style.width, height=UNBOUNDED, size='down')
      case Fit.HEIGHT:
        assert style.height is not None
        return Image.thumbnail(self.path, UNBOUNDED, height=style.height, size='down')
      case Fit.BOX:
        assert style.width is not None and style.height is not None
        return Image.thumbnail(self.path, style.width, height=style.height, size='down')
      case Fit.CROP:
        assert style.width is not None and style.height is not None
        return Image.thumbnail(
            self.path, style.width, height=style.height, crop=Interesting.CENTRE)
      case _:
        raise Exception('system error')

  def process(
      self,
      style_code: str,
      quality: int,
      convert_to: Optional[str] = None,
  ) -> Tuple[bytes, str]:
    style = StyleDescriptor.maybe_from_code(style_code)
    if style is None:
      raise UnsupportedStyle(f"Unsupported format: '{style_code}'")

    image = self.resize(style)
    if style.greyscale:
      image = image.colourspace('b-w')

    fmt = output_format(self.path, convert_to)
    blob: bytes = image.write_to_buffer(f'.{fmt}', **save_options(fmt, quality))

    return blob, MIME_TYPES[fmt]

  def load_for_analysis(self) -> Image:
    if self.image is None:
      self.image = to_srgb(Image.thumbnail(self.path, ANALYSE_SIZE, size='down'))
    return self.image

  def average_color(self) -> str:
    image = self.load_for_analysis()
    return to_hex([image.extract_band(i).avg() for i in range(3)])

  def dominant_color(self) -> str:
    # https://github.com/libvips/pyvips/issues/118
    image = self.load_for_analysis()
    bin_size = 256 / HISTOGRAM_BINS

    hist = image.hist_find_ndim(bins=HISTOGRAM_BINS)
    v, x, y = hist.maxpos()
    z = hist(x, y).index(v)

    return to_hex([(i + 0.5) * bin_size for i in (x, y, z)])

  def analyse(self) -> ColorAnalysis:
    try:
      return {
          'average_color': self.average_color(),
          'dominant_color': self.dominant_color(),
      }
    finally:
      self.destroy()

  def destroy(self) -> None:
    self.image = None


class VideoProcessor:
  """Adapter around the ffmpeg binaries for one source video.

  A missing binary surfaces as FileNotFoundError from subprocess.
  """

  def __init__(self, path: str, ffmpeg: str = 'ffmpeg', ffprobe: str = 'ffprobe'):
    self.path = path
    self.ffmpeg = ffmpeg
    self.ffprobe = ffprobe

  @staticmethod
  def is_video_path(path: str) -> bool:
    _, ext = os.path.splitext(path)
    return ext.lower() in VIDEO_FORMATS

  def is_video(self) -> bool:
    res = subprocess.run(
        [
            self.ffprobe,
            '-v',
            'error',
            '-select_streams',
            'v:0',
            '-show_entries',
            'stream=codec_type',
            '-of',
            'csv=p=0',
            self.path,
        ],
        capture_output=True,
        text=True)
    return res.returncode == 0 and res.stdout.strip().startswith('video')

  def screenshot(self, output: str, seek: float = 0.0) -> None:
    res = subprocess.run(
        [
            self.ffmpeg,
            '-y',
            '-v',
            'error',
            '-ss',
            str(seek),
            '-i',
            self.path,
            '-frames:v',
            '1',
            '-q:v',
            '2',
            output,
        ],
        capture_output=True,
        text=True)
    if res.returncode != 0 or not os.path.exists(output):
      raise VideoProcessingError(res.stderr.strip() or 'no frame extracted')
