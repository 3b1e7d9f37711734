import datetime
import logging
import sys
from logging import Logger
from typing import Any

from pythonjsonlogger.json import JsonFormatter

import imgorigin


class MyJsonFormatter(JsonFormatter):

  def __init__(self) -> None:
    super().__init__(json_ensure_ascii=False)

  def add_fields(self, log_record: Any, record: Any, message_dict: Any) -> None:
    log_record['_ts'] = datetime.datetime.now(datetime.UTC).strftime('%Y-%m-%dT%H:%M:%S.%fZ')

    if log_record.get('level'):
      log_record['level'] = log_record['level'].upper()
    else:
      log_record['level'] = record.levelname

    log_record['version'] = imgorigin.version

    super().add_fields(log_record, record, message_dict)


def init_logging(name: str = 'imgorigin', level: int = logging.DEBUG) -> Logger:
  # https://stackoverflow.com/a/11548754/1160341
  logging.getLogger('pyvips').setLevel(logging.WARNING)
  logging.getLogger('multipart').setLevel(logging.INFO)

  log = logging.getLogger(name)
  log.setLevel(level)
  for h in list(log.handlers):
    log.removeHandler(h)

  log_handler = logging.StreamHandler()
  log_handler.setFormatter(MyJsonFormatter())
  log_handler.setLevel(level)
  log_handler.setStream(sys.stderr)
  log.addHandler(log_handler)
  log.propagate = False

  return log
