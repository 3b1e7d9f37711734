from typing import Optional

import pytest

from imgorigin.typing import HttpPath

from .route import DEFAULT_IMAGE_QUALITY, ROUTES, RequestContext, decompose


def test_routes_are_ordered_most_specific_first() -> None:
  assert [name for name, _ in ROUTES] == [
      'resize_quality_convert',
      'resize_convert',
      'resize_quality',
      'resize',
  ]


@pytest.mark.parametrize(
    'path,expected', [
        (
            '/pics/w100/q70/photo.jpg/convert/photo.PNG',
            RequestContext('/pics', 'w100', 70, 'photo.jpg', 'png', 'resize_quality_convert'),
        ),
        (
            '/pics/w100/photo.jpg/convert/photo.gif',
            RequestContext(
                '/pics', 'w100', DEFAULT_IMAGE_QUALITY, 'photo.jpg', 'gif', 'resize_convert'),
        ),
        (
            '/pics/w100/q70/photo.jpg',
            RequestContext('/pics', 'w100', 70, 'photo.jpg', None, 'resize_quality'),
        ),
        (
            '/pics/w100/photo.jpg',
            RequestContext('/pics', 'w100', DEFAULT_IMAGE_QUALITY, 'photo.jpg', None, 'resize'),
        ),
        (
            '/a/b/c/w100/photo.jpg',
            RequestContext('/a/b/c', 'w100', DEFAULT_IMAGE_QUALITY, 'photo.jpg', None, 'resize'),
        ),
        (
            '/w100/photo.jpg',
            RequestContext('', 'w100', DEFAULT_IMAGE_QUALITY, 'photo.jpg', None, 'resize'),
        ),
        (
            '/pics/w100/q0/photo.jpg',
            RequestContext('/pics', 'w100', 0, 'photo.jpg', None, 'resize_quality'),
        ),
        ('/photo.jpg', None),
        ('/pics/../w100/photo.jpg', None),
        ('/pics/w100/..', None),
        ('/pics/w100/photo.jpg/', None),
        ('//staging/pics/w100/photo.jpg', None),
        ('//w100/photo.jpg', None),
        ('/pics//w100/photo.jpg', None),
        ('/pics/w100//photo.jpg', None),
    ],
    ids=[
        'quality-convert',
        'convert',
        'quality',
        'resize',
        'nested-dir',
        'no-dir',
        'zero-quality',
        'too-short',
        'parent-segment',
        'parent-basename',
        'trailing-slash',
        'leading-empty-dir',
        'empty-dir-only',
        'inner-empty-segment',
        'empty-basename-segment',
    ])
def test_decompose(path: str, expected: Optional[RequestContext]) -> None:
  assert decompose(HttpPath(path)) == expected


def test_quality_route_wins_over_directory_reading() -> None:
  # '/pics/w100/q70/photo.jpg' would also read as dir '/pics/w100', style 'q70'.
  ctx = decompose(HttpPath('/pics/w100/q70/photo.jpg'))
  assert ctx is not None
  assert (ctx.directory, ctx.style_code, ctx.quality) == ('/pics', 'w100', 70)


def test_convert_route_wins_over_plain_resize() -> None:
  ctx = decompose(HttpPath('/pics/w100/photo.jpg/convert/photo.png'))
  assert ctx is not None
  assert ctx.directory == '/pics'
  assert ctx.basename == 'photo.jpg'
  assert ctx.conversion_format == 'png'


def test_request_context_names() -> None:
  ctx = RequestContext('/pics', 'w100', 85, 'clip.MP4')
  assert ctx.filename == 'clip'
  assert ctx.extension == '.mp4'
  assert ctx.asset_path == '/pics/clip.MP4'
