from http import HTTPStatus
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from fastapi.templating import Jinja2Templates
from prometheus_client import CONTENT_TYPE_LATEST

import imgorigin
from imgorigin.cachedirective import Conditional
from imgorigin.server import (
    Analysis,
    ImgServer,
    NotModified,
    OutcomeKind,
    Rejection,
    Rendition
)
from imgorigin.typing import HttpPath

STATUS_BY_KIND = {
    OutcomeKind.NOT_FOUND: HTTPStatus.NOT_FOUND,
    OutcomeKind.FORBIDDEN: HTTPStatus.FORBIDDEN,
    OutcomeKind.PRECONDITION_FAILED: HTTPStatus.PRECONDITION_FAILED,
}

templates = Jinja2Templates(directory=str(Path(__file__).with_name('templates')))


def conditional_from(request: Request) -> Conditional:
  return Conditional.from_headers(
      request.headers.get('if-none-match'), request.headers.get('if-modified-since'))


def to_response(outcome: Rendition | Analysis | NotModified | Rejection) -> Response:
  match outcome:
    case Rendition(body=body, content_type=content_type, headers=headers):
      return Response(content=body, media_type=content_type, headers=headers)
    case Analysis(result=result, headers=headers):
      return JSONResponse(result, headers=headers)
    case NotModified(headers=headers):
      return Response(status_code=HTTPStatus.NOT_MODIFIED, headers=headers)
    case Rejection(kind=kind):
      status = STATUS_BY_KIND[kind]
      return PlainTextResponse(status.phrase, status_code=status)
    case _:
      raise Exception('system error')


def create_app(server: ImgServer) -> FastAPI:
  app = FastAPI(
      title='imgorigin',
      version=imgorigin.version,
      docs_url=None,
      redoc_url=None,
      openapi_url=None)

  # Registration order is the matching order; the asset catch-all comes last.

  @app.get('/heartbeat', response_class=PlainTextResponse)
  def heartbeat() -> str:
    return 'ok'

  @app.get('/metrics')
  def metrics() -> Response:
    return Response(content=server.metrics.exposition(), media_type=CONTENT_TYPE_LATEST)

  @app.get('/analyse-test', response_class=HTMLResponse)
  def analyse_test(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request, 'analyse_test.html', {'images': server.analyse_test()})

  @app.get('/analyse/{name:path}')
  def analyse(name: str, request: Request) -> Response:
    return to_response(
        server.analyse(HttpPath(f'/analyse/{name}'), name, conditional_from(request)))

  @app.get('/{path:path}')
  def asset(path: str, request: Request) -> Response:
    return to_response(server.process(HttpPath(f'/{path}'), conditional_from(request)))

  return app
