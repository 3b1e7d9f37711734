import dataclasses
import re
from enum import Enum
from typing import Optional

MAX_DIMENSION = 5000

style_code_re = re.compile(
    r'^(?:(?P<original>original)'
    r'|m(?P<max>\d+)'
    r'|w(?P<width>\d+)(?:h(?P<box_height>\d+)(?P<crop>c)?)?'
    r'|h(?P<height>\d+))'
    r'(?P<greyscale>-bw)?$')


class Fit(Enum):
  ORIGINAL = 0
  WIDTH = 1
  HEIGHT = 2
  BOX = 3
  CROP = 4


@dataclasses.dataclass(eq=True, frozen=True)
class StyleDescriptor:
  code: str
  fit: Fit
  width: Optional[int] = None
  height: Optional[int] = None
  greyscale: bool = False

  @classmethod
  def maybe_from_code(cls, code: str) -> Optional['StyleDescriptor']:
    m = style_code_re.match(code)
    if m is None:
      return None

    greyscale = m['greyscale'] is not None

    if m['original'] is not None:
      return cls(code, Fit.ORIGINAL, greyscale=greyscale)

    if m['max'] is not None:
      fit, width, height = Fit.BOX, int(m['max']), int(m['max'])
    elif m['box_height'] is not None:
      fit = Fit.CROP if m['crop'] is not None else Fit.BOX
      width, height = int(m['width']), int(m['box_height'])
    elif m['width'] is not None:
      fit, width, height = Fit.WIDTH, int(m['width']), None
    else:
      fit, width, height = Fit.HEIGHT, None, int(m['height'])

    for d in (width, height):
      if d is not None and not 0 < d <= MAX_DIMENSION:
        return None

    return cls(code, fit, width=width, height=height, greyscale=greyscale)
