import dataclasses
import datetime
import hashlib
import json
from email.utils import format_datetime
from typing import Any, Literal, Optional

from dateutil import parser
from pathspec import PathSpec

from imgorigin.typing import HttpPath

DEFAULT_EXPIRES = 30 * 24 * 60 * 60  # 30 days in seconds

EDGE_NO_STORE = 'no-store, max-age=0'

# (max-age threshold, stale window), coarsest first
STALE_LADDER = [
    (31_536_000, 2_628_000),
    (2_628_000, 86_400),
    (86_400, 3600),
    (3600, 60),
]


def stale_window_for(max_age: int) -> int:
  for threshold, window in STALE_LADDER:
    if max_age >= threshold:
      return window
  return 0


@dataclasses.dataclass(eq=True, frozen=True)
class CacheDirective:
  visibility: Literal['public', 'private']
  max_age: int
  stale_window: int = 0
  no_store: bool = False
  edge_control: Optional[str] = None

  def __post_init__(self) -> None:
    if self.stale_window > 0 and self.no_store:
      raise ValueError('a stale window cannot be combined with no-store')

  @classmethod
  def public(cls, max_age: int = DEFAULT_EXPIRES) -> 'CacheDirective':
    return cls('public', max_age, stale_window=stale_window_for(max_age))

  @classmethod
  def private(cls) -> 'CacheDirective':
    return cls(
        'private', 0, stale_window=stale_window_for(0), no_store=True, edge_control=EDGE_NO_STORE)

  @classmethod
  def for_path(cls, path: HttpPath, private_spec: Optional[PathSpec]) -> 'CacheDirective':
    if private_spec is not None and private_spec.match_file(path):
      return cls.private()
    return cls.public()

  @property
  def cache_control(self) -> str:
    parts = [self.visibility]
    if self.no_store:
      parts.append('no-store')
    parts.append(f'max-age={self.max_age}')
    return ', '.join(parts)


def json_dump(obj: Any) -> str:
  return json.dumps(obj, separators=(',', ':'), sort_keys=True)


def calculate_etag(last_modified: datetime.datetime, *factors: Any) -> str:
  return hashlib.md5(json_dump([last_modified.isoformat(), *factors]).encode()).hexdigest()


def http_date(dt: datetime.datetime) -> str:
  return format_datetime(dt.astimezone(datetime.UTC).replace(microsecond=0), usegmt=True)


def response_headers(
    directive: CacheDirective,
    etag: str,
    last_modified: datetime.datetime,
    now: datetime.datetime,
) -> dict[str, str]:
  headers = {
      'ETag': f'"{etag}"',
      'Last-Modified': http_date(last_modified),
      'Cache-Control': directive.cache_control,
  }

  if directive.visibility == 'public':
    headers['Expires'] = http_date(now + datetime.timedelta(seconds=directive.max_age))

  if directive.edge_control is not None:
    headers['Edge-Control'] = directive.edge_control

  if directive.stale_window > 0:
    headers['Stale-While-Revalidate'] = str(directive.stale_window)
    headers['Stale-If-Error'] = str(directive.stale_window)

  return headers


def parse_http_date(s: Optional[str]) -> Optional[datetime.datetime]:
  if s is None or s.strip() == '':
    return None
  try:
    dt = parser.parse(s)
  except (ValueError, OverflowError):
    return None
  if dt.tzinfo is None:
    dt = dt.replace(tzinfo=datetime.UTC)
  return dt


@dataclasses.dataclass(eq=True, frozen=True)
class Conditional:
  if_none_match: tuple[str, ...] = ()
  if_modified_since: Optional[datetime.datetime] = None

  @classmethod
  def from_headers(
      cls,
      if_none_match: Optional[str],
      if_modified_since: Optional[str],
  ) -> 'Conditional':
    tags = () if if_none_match is None else tuple(
        t.strip() for t in if_none_match.split(',') if t.strip() != '')
    return cls(if_none_match=tags, if_modified_since=parse_http_date(if_modified_since))

  def not_modified(self, etag: str, last_modified: datetime.datetime) -> bool:
    # If-None-Match takes precedence over If-Modified-Since (RFC 9110 13.2.2).
    if len(self.if_none_match) > 0:
      quoted = f'"{etag}"'
      return any(t in ('*', quoted, f'W/{quoted}') for t in self.if_none_match)

    if self.if_modified_since is not None:
      return last_modified.replace(microsecond=0) <= self.if_modified_since

    return False
