import dataclasses
import datetime
import os
import shutil
import tempfile
from contextlib import contextmanager
from enum import Enum
from logging import Logger
from pathlib import Path
from typing import Any, Callable, Generator, Optional

from dateutil import tz

from imgorigin.cachedirective import (
    CacheDirective,
    Conditional,
    calculate_etag,
    http_date,
    response_headers
)
from imgorigin.metrics import Metrics
from imgorigin.processor import ImageProcessor, VideoProcessingError, VideoProcessor
from imgorigin.route import RequestContext, decompose
from imgorigin.screen import AssetRef, mime_by_path, modified_at
from imgorigin.settings import Settings
from imgorigin.style import StyleDescriptor
from imgorigin.typing import AnalysedFile, HttpPath

ALLOWED_CONVERSION_FORMATS = ('jpg', 'png', 'gif')

TRANSFORM_OPERATION = 'asset_resize'
SCRATCH_DIR = 'tmp'
SCREENSHOT_NAME = 'screenshot.jpg'
ANALYSE_TEST_DIR = 'analyse-test'
ANALYSE_ETAG_FACTOR = 'analyse'


def get_now() -> datetime.datetime:
  # Return timezone-aware datetime
  return datetime.datetime.now(tz=tz.tzutc())


class OutcomeKind(Enum):
  NOT_FOUND = 0
  FORBIDDEN = 1
  PRECONDITION_FAILED = 2


@dataclasses.dataclass(frozen=True)
class Rejection:
  kind: OutcomeKind
  reason: str


@dataclasses.dataclass(frozen=True)
class Rendition:
  body: bytes
  content_type: str
  headers: dict[str, str]
  static: bool = False


@dataclasses.dataclass(frozen=True)
class NotModified:
  headers: dict[str, str]


@dataclasses.dataclass(frozen=True)
class Analysis:
  result: AnalysedFile
  headers: dict[str, str]


Outcome = Rendition | NotModified | Rejection


@contextmanager
def scratch_directory(root: str, name: str) -> Generator[str, None, None]:
  """Yield a fresh directory under root that is removed on every exit path.

  The random suffix keeps concurrent requests for the same name apart.
  """
  os.makedirs(root, exist_ok=True)
  path = tempfile.mkdtemp(prefix=f'{name}-', dir=root)
  try:
    yield path
  finally:
    shutil.rmtree(path, ignore_errors=True)


class ImgServer:

  def __init__(
      self,
      log: Logger,
      settings: Settings,
      metrics: Metrics,
      image_processor: Callable[[str], ImageProcessor] = ImageProcessor,
      get_now: Callable[[], datetime.datetime] = get_now,
  ):
    self.log = log
    self.settings = settings
    self.metrics = metrics
    self.source_folder = settings.source_folder
    self.real_source_folder = Path(os.path.realpath(settings.source_folder))
    self.scratch_root = os.path.join(settings.source_folder, SCRATCH_DIR)
    self.allowed_style_codes = settings.allowed_style_codes()
    self.private_path_spec = settings.private_path_spec()
    self.image_processor = image_processor
    self.get_now = get_now

  def video_processor(self, path: str) -> VideoProcessor:
    return VideoProcessor(path, ffmpeg=self.settings.ffmpeg, ffprobe=self.settings.ffprobe)

  def log_error(self, path: HttpPath, message: str, dict: dict[str, Any]) -> None:
    self.log.error({
        'message': message,
        'path': str(path),
        **dict,
    })

  def log_debug(self, path: HttpPath, message: str, dict: dict[str, Any]) -> None:
    self.log.debug({
        'message': message,
        'path': str(path),
        **dict,
    })

  def reject(
      self,
      path: HttpPath,
      kind: OutcomeKind,
      counter: str,
      message: str,
      dict: dict[str, Any],
  ) -> Rejection:
    self.log_error(path, message, dict)
    self.metrics.increment(counter)
    return Rejection(kind=kind, reason=counter)

  def resolve(self, *parts: str) -> Optional[str]:
    path = os.path.join(self.source_folder, *(p.lstrip('/') for p in parts))
    if not Path(os.path.realpath(path)).is_relative_to(self.real_source_folder):
      return None
    return path

  def cache_headers(
      self,
      ctx: RequestContext,
      last_modified: datetime.datetime,
      *factors: Any,
  ) -> tuple[str, dict[str, str]]:
    etag = calculate_etag(last_modified, *factors)
    directive = CacheDirective.for_path(ctx.asset_path, self.private_path_spec)
    return etag, response_headers(directive, etag, last_modified, self.get_now())

  def valid_style_code(self, style_code: str) -> bool:
    if StyleDescriptor.maybe_from_code(style_code) is None:
      return False
    return self.allowed_style_codes is None or style_code in self.allowed_style_codes

  def serve_static_file(
      self,
      path: HttpPath,
      ctx: RequestContext,
      conditional: Conditional,
  ) -> Optional[Rendition | NotModified]:
    static_file = self.resolve(ctx.directory, ctx.style_code, ctx.basename)
    if static_file is None or not os.path.isfile(static_file):
      return None

    last_modified = modified_at(static_file)
    etag, headers = self.cache_headers(
        ctx, last_modified, ctx.directory, ctx.style_code, ctx.basename)
    self.metrics.increment('serve_original_image')
    self.log_debug(path, 'serving static file', {'file': static_file})

    if conditional.not_modified(etag, last_modified):
      return NotModified(headers=headers)

    with open(static_file, 'rb') as f:
      body = f.read()

    return Rendition(
        body=body,
        content_type=mime_by_path(static_file) or 'application/octet-stream',
        headers=headers,
        static=True)

  def process(self, path: HttpPath, conditional: Conditional = Conditional()) -> Outcome:
    ctx = decompose(path)
    if ctx is None:
      return Rejection(kind=OutcomeKind.NOT_FOUND, reason='no_route')

    if ctx.directory == '':
      return self.reject(
          path, OutcomeKind.NOT_FOUND, 'dir_not_extracted',
          '404, incorrect path, dir not extracted.', {})

    static = self.serve_static_file(path, ctx, conditional)
    if static is not None:
      return static

    if not self.valid_style_code(ctx.style_code):
      return self.reject(
          path, OutcomeKind.NOT_FOUND, 'asset_format_not_in_whitelist',
          '404, format code not found.', {'format_code': ctx.style_code})

    if not 0 < ctx.quality <= 100:
      return self.reject(
          path, OutcomeKind.NOT_FOUND, 'invalid_quality', '404, invalid image quality.',
          {'quality': ctx.quality})

    source_file = self.resolve(ctx.directory, ctx.basename)
    if source_file is None or not os.path.isfile(source_file):
      return self.reject(
          path, OutcomeKind.NOT_FOUND, 'asset_not_found', '404, original file not found.',
          {'source_file': source_file})

    asset = AssetRef.from_path(source_file)
    if not asset.valid:
      return self.reject(
          path, OutcomeKind.FORBIDDEN, 'invalid_media_type',
          '403, file is not a valid image/video file.', {
              'source_file': source_file,
              'mime_by_path': asset.mime_by_path,
              'mime_by_magic': asset.mime_by_magic,
          })

    factors: list[Any] = [ctx.directory, ctx.style_code, ctx.quality, ctx.basename]
    if ctx.conversion_format is not None:
      if ctx.conversion_format not in ALLOWED_CONVERSION_FORMATS:
        return self.reject(
            path, OutcomeKind.NOT_FOUND, 'conversion_format_not_in_whitelist',
            '404, conversion format not found.', {'format': ctx.conversion_format})
      factors.append(ctx.conversion_format)

    etag, headers = self.cache_headers(ctx, asset.last_modified, *factors)
    if conditional.not_modified(etag, asset.last_modified):
      return NotModified(headers=headers)

    if VideoProcessor.is_video_path(source_file):
      return self.generate_video_screenshot(path, ctx, source_file, headers)

    return self.generate_image(ctx, source_file, headers)

  def generate_image(
      self,
      ctx: RequestContext,
      source_file: str,
      headers: dict[str, str],
  ) -> Rendition:
    with self.metrics.time(TRANSFORM_OPERATION):
      blob, mime = self.image_processor(source_file).process(
          ctx.style_code, ctx.quality, ctx.conversion_format)

    return Rendition(body=blob, content_type=mime, headers=headers)

  def generate_video_screenshot(
      self,
      path: HttpPath,
      ctx: RequestContext,
      source_file: str,
      headers: dict[str, str],
  ) -> Outcome:
    with scratch_directory(self.scratch_root, ctx.filename) as scratch:
      output_file = os.path.join(scratch, SCREENSHOT_NAME)
      video = self.video_processor(source_file)

      try:
        if not video.is_video():
          return self.reject(
              path, OutcomeKind.NOT_FOUND, 'asset_not_a_video', '404, no video stream found.',
              {'source_file': source_file})
        video.screenshot(output_file)
      except FileNotFoundError as e:
        return self.reject(
            path, OutcomeKind.PRECONDITION_FAILED, 'video_processing_unavailable',
            '412, video processing not available on this server.', {'reason': str(e)})
      except VideoProcessingError as e:
        return self.reject(
            path, OutcomeKind.NOT_FOUND, 'video_screenshot_failed',
            '404, failed to extract a video frame.', {'reason': str(e)})

      frame = self.copy_screenshot(output_file, ctx)
      return self.generate_image(ctx, frame, headers)

  def copy_screenshot(self, output_file: str, ctx: RequestContext) -> str:
    """Place the frame beside the original video so later requests can reuse it.

    The copy goes through a temporary file and a rename so that concurrent or
    repeated requests only ever see a complete frame.
    """
    dest = os.path.join(self.source_folder, ctx.directory.lstrip('/'), f'{ctx.filename}.jpg')
    fd, tmp = tempfile.mkstemp(
        prefix=f'.{ctx.filename}-', suffix='.jpg', dir=os.path.dirname(dest))
    os.close(fd)
    try:
      shutil.copyfile(output_file, tmp)
      os.replace(tmp, dest)
    except BaseException:
      os.unlink(tmp)
      raise
    return dest

  def analyse_file(self, source_file: str, name: str) -> AnalysedFile:
    colors = self.image_processor(source_file).analyse()
    return {
        'average_color': colors['average_color'],
        'dominant_color': colors['dominant_color'],
        'file': name,
    }

  def analyse(
      self,
      path: HttpPath,
      name: str,
      conditional: Conditional = Conditional(),
  ) -> Analysis | NotModified | Rejection:
    source_file = self.resolve(name)
    if source_file is None or not os.path.isfile(source_file):
      return Rejection(kind=OutcomeKind.NOT_FOUND, reason='asset_not_found')

    asset = AssetRef.from_path(source_file)
    if not asset.valid:
      return self.reject(
          path, OutcomeKind.FORBIDDEN, 'invalid_media_type',
          '403, file is not a valid image/video file.', {
              'source_file': source_file,
              'mime_by_path': asset.mime_by_path,
              'mime_by_magic': asset.mime_by_magic,
          })

    etag = calculate_etag(asset.last_modified, ANALYSE_ETAG_FACTOR)
    headers = {
        'ETag': f'"{etag}"',
        'Last-Modified': http_date(asset.last_modified),
    }
    if conditional.not_modified(etag, asset.last_modified):
      return NotModified(headers=headers)

    return Analysis(result=self.analyse_file(source_file, name), headers=headers)

  def analyse_test(self) -> list[AnalysedFile]:
    image_dir = os.path.normpath(os.path.join(self.source_folder, '..', ANALYSE_TEST_DIR))
    if not os.path.isdir(image_dir):
      return []

    images = []
    for name in sorted(os.listdir(image_dir)):
      source_file = os.path.join(image_dir, name)
      if not os.path.isfile(source_file) or not AssetRef.from_path(source_file).valid:
        continue
      images.append(self.analyse_file(source_file, f'/{ANALYSE_TEST_DIR}/{name}'))

    return images
