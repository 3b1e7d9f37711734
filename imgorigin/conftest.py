import logging
from logging import Logger
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from pyvips import Image  # type: ignore

from imgorigin.app import create_app
from imgorigin.jsonlog import MyJsonFormatter
from imgorigin.metrics import Metrics
from imgorigin.server import ImgServer
from imgorigin.settings import Settings

WHITELIST = ('w100', 'w40h30c', 'm50', 'original', 'w100-bw')

JPG_NAME = 'photo.jpg'
PNG_NAME = 'photo.png'
VIDEO_NAME = 'clip.mp4'
SPOOFED_NAME = 'spoofed.jpg'
MISMATCHED_NAME = 'mismatched.jpg'
MVG_NAME = 'payload.jpg'

# Enough of an ISO base media header for libmagic to call it video/mp4.
MP4_HEADER = b'\x00\x00\x00\x20ftypisom\x00\x00\x02\x00isomiso2avc1mp41' + b'\x00' * 64

SHELL_SCRIPT = b'#!/bin/sh\necho pwned\n'

MVG_PAYLOAD = b'''push graphic-context
viewbox 0 0 640 480
fill 'url(https://example.com/image.jpg"|ls "-la)'
pop graphic-context
'''


def write_image(path: Path, width: int = 320, height: int = 240) -> None:
  image = (Image.black(width, height) + [200, 100, 50]).cast('uchar')
  image.copy(interpretation='srgb').write_to_file(str(path))


def populate(root: Path) -> None:
  for d in [root / 'pics', root / 'staging' / 'pics', root / 'pics' / 'w100']:
    d.mkdir(parents=True, exist_ok=True)

  write_image(root / 'pics' / JPG_NAME)
  write_image(root / 'pics' / PNG_NAME)
  write_image(root / 'staging' / 'pics' / JPG_NAME)
  write_image(root / 'pics' / 'w100' / 'static.jpg', 100, 75)

  (root / 'pics' / VIDEO_NAME).write_bytes(MP4_HEADER)
  (root / 'pics' / SPOOFED_NAME).write_bytes(SHELL_SCRIPT)
  (root / 'pics' / MVG_NAME).write_bytes(MVG_PAYLOAD)
  (root / 'pics' / MISMATCHED_NAME).write_bytes((root / 'pics' / PNG_NAME).read_bytes())


@pytest.fixture
def source_folder(tmp_path: Path) -> Path:
  root = tmp_path / 'public'
  populate(root)

  analyse_dir = tmp_path / 'analyse-test'
  analyse_dir.mkdir()
  write_image(analyse_dir / 'sample.jpg', 64, 48)
  (analyse_dir / 'notes.txt').write_text('not an image')

  return root


@pytest.fixture
def logger(tmp_path: Path) -> Generator[Logger, None, None]:
  log = logging.getLogger(f'imgorigin.test.{tmp_path.name}')
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
def settings(source_folder: Path) -> Settings:
  return Settings(
      source_folder=str(source_folder),
      format_whitelist=WHITELIST,
      ffmpeg='/nonexistent/ffmpeg',
      ffprobe='/nonexistent/ffprobe')


@pytest.fixture
def metrics() -> Metrics:
  return Metrics()


@pytest.fixture
def img_server(logger: Logger, settings: Settings, metrics: Metrics) -> ImgServer:
  return ImgServer(logger, settings, metrics)


@pytest.fixture
def client(img_server: ImgServer) -> TestClient:
  return TestClient(create_app(img_server))


def event_count(metrics: Metrics, name: str) -> int:
  value = metrics.registry.get_sample_value('imgorigin_events_total', {'name': name})
  return 0 if value is None else int(value)


def timing_count(metrics: Metrics, operation: str) -> int:
  value = metrics.registry.get_sample_value(
      'imgorigin_operation_seconds_count', {'operation': operation})
  return 0 if value is None else int(value)
