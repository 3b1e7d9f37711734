import os

import uvicorn

from imgorigin.app import create_app
from imgorigin.jsonlog import init_logging
from imgorigin.metrics import Metrics
from imgorigin.server import ImgServer
from imgorigin.settings import Settings

logger = init_logging()

app = create_app(ImgServer(logger, Settings.from_env(log=logger), Metrics()))


def main() -> None:
  uvicorn.run(
      'imgorigin.index:app',
      host=os.environ.get('IMGORIGIN_HOST', '127.0.0.1'),
      port=int(os.environ.get('IMGORIGIN_PORT', '9292')),
      workers=int(os.environ.get('IMGORIGIN_WORKERS', '1')),
      log_config=None)
