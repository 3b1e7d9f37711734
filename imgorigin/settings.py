import dataclasses
import logging
import os
from enum import Enum
from logging import Logger
from typing import Any, Mapping, Optional

from pathspec import PathSpec

ENV_PREFIX = 'IMGORIGIN_'

DEFAULT_ENVIRONMENT = 'production'
DEVELOPMENT = 'development'
DEFAULT_PRIVATE_PATH_PATTERNS = '/staging/**'


class KeyNotFoundError(KeyError):
  pass


class WhitelistFallback(Enum):
  DENY = 0
  ALLOW = 1


def split_list(s: str) -> tuple[str, ...]:
  return tuple(v.strip() for v in s.split(',') if v.strip() != '')


@dataclasses.dataclass(eq=True, frozen=True)
class Settings:
  source_folder: str
  environment: str = DEFAULT_ENVIRONMENT
  format_whitelist: Optional[tuple[str, ...]] = None
  whitelist_when_unset: WhitelistFallback = WhitelistFallback.DENY
  private_path_patterns: tuple[str, ...] = (DEFAULT_PRIVATE_PATH_PATTERNS,)
  ffmpeg: str = 'ffmpeg'
  ffprobe: str = 'ffprobe'

  @classmethod
  def from_env(
      cls,
      environ: Mapping[str, str] = os.environ,
      log: Optional[Logger] = None,
  ) -> 'Settings':
    log = log or logging.getLogger(__name__)

    def get(name: str, default: Optional[str] = None) -> Optional[str]:
      value = environ.get(f'{ENV_PREFIX}{name}', '')
      return default if value == '' else value

    source_folder = get('SOURCE_FOLDER')
    if source_folder is None:
      log.warning({
          'message': 'environment variable not found',
          'key': f'{ENV_PREFIX}SOURCE_FOLDER',
      })
      raise KeyNotFoundError('source_folder')

    whitelist = get('FORMAT_WHITELIST')
    try:
      fallback = WhitelistFallback[get('WHITELIST_WHEN_UNSET', 'deny').upper()]
    except KeyError:
      log.warning({
          'message': 'unknown whitelist fallback, denying',
          'value': get('WHITELIST_WHEN_UNSET'),
      })
      fallback = WhitelistFallback.DENY

    return cls(
        source_folder=os.path.abspath(source_folder),
        environment=get('ENV', DEFAULT_ENVIRONMENT),
        format_whitelist=None if whitelist is None else split_list(whitelist),
        whitelist_when_unset=fallback,
        private_path_patterns=split_list(
            get('PRIVATE_PATH_PATTERNS', DEFAULT_PRIVATE_PATH_PATTERNS)),
        ffmpeg=get('FFMPEG', 'ffmpeg'),
        ffprobe=get('FFPROBE', 'ffprobe'))

  def lookup(self, key: str) -> Any:
    if key.startswith('_') or key not in {f.name for f in dataclasses.fields(self)}:
      raise KeyNotFoundError(key)

    value = getattr(self, key)
    if value is None:
      raise KeyNotFoundError(key)

    return value

  @property
  def use_format_whitelist(self) -> bool:
    return self.environment != DEVELOPMENT

  def allowed_style_codes(self) -> Optional[frozenset[str]]:
    """Return the style code whitelist, or None when every valid code is allowed.

    A whitelist that is not configured at all counts as empty unless the
    fallback says otherwise.
    """
    if not self.use_format_whitelist:
      return None

    try:
      return frozenset(self.lookup('format_whitelist'))
    except KeyNotFoundError:
      if self.whitelist_when_unset == WhitelistFallback.ALLOW:
        return None
      return frozenset()

  def private_path_spec(self) -> Optional[PathSpec]:
    if len(self.private_path_patterns) == 0:
      return None
    return PathSpec.from_lines('gitwildmatch', self.private_path_patterns)
