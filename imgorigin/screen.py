import dataclasses
import datetime
import mimetypes
import os
from typing import Optional

import magic
from dateutil import tz

MAGIC_BUFFER_SIZE = 2048

MEDIA_TYPES = ('image', 'video')


def mime_by_path(path: str) -> Optional[str]:
  return mimetypes.guess_file_type(path)[0]


def mime_by_magic(path: str) -> Optional[str]:
  with open(path, 'rb') as f:
    head = f.read(MAGIC_BUFFER_SIZE)

  if len(head) == 0:
    return None

  return magic.from_buffer(head, mime=True)


def is_media(mime: Optional[str]) -> bool:
  return mime is not None and mime.split('/', 1)[0] in MEDIA_TYPES


def modified_at(path: str) -> datetime.datetime:
  return datetime.datetime.fromtimestamp(os.stat(path).st_mtime, tz=tz.tzutc())


@dataclasses.dataclass(frozen=True)
class AssetRef:
  path: str
  last_modified: datetime.datetime
  mime_by_path: Optional[str]
  mime_by_magic: Optional[str]

  @classmethod
  def from_path(cls, path: str) -> 'AssetRef':
    # Sniffed on every request; a verdict is never reused.
    return cls(
        path=path,
        last_modified=modified_at(path),
        mime_by_path=mime_by_path(path),
        mime_by_magic=mime_by_magic(path))

  @property
  def valid(self) -> bool:
    """Guard against ImageTragick-style polyglots.

    The content must sniff as an image or a video, and the extension must claim
    exactly that type.

    @ref: https://imagetragick.com
    """
    return is_media(self.mime_by_magic) and self.mime_by_path == self.mime_by_magic
