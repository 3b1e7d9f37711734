import dataclasses
import re
from typing import Optional

from imgorigin.typing import HttpPath

DEFAULT_IMAGE_QUALITY = 85

# Shapes overlap syntactically, so the most specific one must be tried first.
ROUTES: list[tuple[str, re.Pattern[str]]] = [
    (
        'resize_quality_convert',
        re.compile(
            r'\A(?P<dir>.+)?/(?P<style>[^/]+)/q(?P<quality>\d+)/(?P<basename>[^/]+)'
            r'/convert/(?P<newname>[^./]+)\.(?P<newformat>[^./]+)\Z'),
    ),
    (
        'resize_convert',
        re.compile(
            r'\A(?P<dir>.+)?/(?P<style>[^/]+)/(?P<basename>[^/]+)'
            r'/convert/(?P<newname>[^./]+)\.(?P<newformat>[^./]+)\Z'),
    ),
    (
        'resize_quality',
        re.compile(r'\A(?P<dir>.+)?/(?P<style>[^/]+)/q(?P<quality>\d+)/(?P<basename>[^/]+)\Z'),
    ),
    (
        'resize',
        re.compile(r'\A(?P<dir>.+)?/(?P<style>[^/]+)/(?P<basename>[^/]+)\Z'),
    ),
]


@dataclasses.dataclass(eq=True, frozen=True)
class RequestContext:
  directory: str
  style_code: str
  quality: int
  basename: str
  conversion_format: Optional[str] = None
  route: str = ''

  @property
  def filename(self) -> str:
    """Basename without its extension."""
    stem, dot, _ = self.basename.rpartition('.')
    return stem if dot else self.basename

  @property
  def extension(self) -> str:
    _, dot, ext = self.basename.rpartition('.')
    return f'.{ext.lower()}' if dot else ''

  @property
  def asset_path(self) -> HttpPath:
    return HttpPath(f'{self.directory}/{self.basename}')


def has_unsafe_segment(path: str) -> bool:
  # Segments after the leading slash are never empty or relative.
  return any(s in ('', '.', '..') for s in path.split('/')[1:])


def decompose(path: HttpPath) -> Optional[RequestContext]:
  if has_unsafe_segment(path):
    return None

  for name, pattern in ROUTES:
    m = pattern.match(path)
    if m is None:
      continue

    groups = m.groupdict()
    quality = groups.get('quality')
    newformat = groups.get('newformat')

    return RequestContext(
        directory=groups['dir'] or '',
        style_code=groups['style'],
        quality=DEFAULT_IMAGE_QUALITY if quality is None else int(quality),
        basename=groups['basename'],
        conversion_format=None if newformat is None else newformat.lower(),
        route=name)

  return None
