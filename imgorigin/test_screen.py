from pathlib import Path

import pytest

from .conftest import (
    JPG_NAME,
    MISMATCHED_NAME,
    MVG_NAME,
    PNG_NAME,
    SPOOFED_NAME,
    VIDEO_NAME
)
from .screen import AssetRef


@pytest.mark.parametrize(
    'name,mime_by_path,mime_by_magic,valid', [
        (JPG_NAME, 'image/jpeg', 'image/jpeg', True),
        (PNG_NAME, 'image/png', 'image/png', True),
        (VIDEO_NAME, 'video/mp4', 'video/mp4', True),
        (SPOOFED_NAME, 'image/jpeg', 'text/x-shellscript', False),
        (MISMATCHED_NAME, 'image/jpeg', 'image/png', False),
    ],
    ids=['jpg', 'png', 'mp4', 'script-as-jpg', 'png-as-jpg'])
def test_asset_ref(
    source_folder: Path,
    name: str,
    mime_by_path: str,
    mime_by_magic: str,
    valid: bool,
) -> None:
  asset = AssetRef.from_path(str(source_folder / 'pics' / name))

  assert asset.mime_by_path == mime_by_path
  assert asset.mime_by_magic == mime_by_magic
  assert asset.valid == valid


def test_imagetragick_payload_is_rejected(source_folder: Path) -> None:
  asset = AssetRef.from_path(str(source_folder / 'pics' / MVG_NAME))
  assert asset.mime_by_path == 'image/jpeg'
  assert not asset.valid


@pytest.mark.parametrize(
    'name,content', [
        ('empty.jpg', b''),
        ('noext', b'\xff\xd8\xff\xe0\x00\x10JFIF\x00'),
        ('elf.png', b'\x7fELF\x02\x01\x01\x00' + b'\x00' * 56),
        ('doc.txt', b'hello world\n'),
    ],
    ids=['empty', 'no-extension', 'elf', 'text'])
def test_non_media_is_rejected(tmp_path: Path, name: str, content: bytes) -> None:
  path = tmp_path / name
  path.write_bytes(content)
  assert not AssetRef.from_path(str(path)).valid


def test_verdict_is_not_cached(tmp_path: Path, source_folder: Path) -> None:
  path = tmp_path / 'swap.jpg'
  path.write_bytes((source_folder / 'pics' / JPG_NAME).read_bytes())
  assert AssetRef.from_path(str(path)).valid

  path.write_bytes(b'#!/bin/sh\necho pwned\n')
  assert not AssetRef.from_path(str(path)).valid
