"""
bandcatalog.api
===============

HTTP surface of the catalog.  The application is a small FastAPI app whose
routes only translate between multipart/JSON and the
:class:`bandcatalog.store.CatalogStore`; everything that touches the disk
lives in the store.

Besides the JSON routes two static mounts are exposed:

* ``/static`` serves the whole static root.
* ``/groups`` serves the catalog root with ``Cache-Control: no-cache``.
  URLs returned by the API point at this mount and carry a ``v`` query
  parameter so that clients re-fetch replaced covers.

Usage
-----

```
python3 main.py --port 4001
```

or, with uvicorn directly::

    uvicorn bandcatalog.api:create_app --factory --port 4001
"""

import logging
import os

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from bandcatalog.api import albums, groups, tracks
from bandcatalog.config import CORS_ORIGINS, MAX_UPLOAD_SIZE, STATIC_DIR, TMP_DIR
from bandcatalog.store import CatalogError, CatalogStore
from bandcatalog.utils import GROUPS_MOUNT

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class NoCacheStaticFiles(StaticFiles):
    async def get_response(self, path, scope):
        response = await super().get_response(path, scope)
        response.headers['Cache-Control'] = 'no-cache'
        return response


async def catalog_error_handler(request: Request, exc: CatalogError):
    logger.warning("%s %s failed with %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={'error': exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={'error': 'Invalid request'})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={'error': 'Internal server error'})


def create_app(static_dir: str | None = None, tmp_dir: str | None = None, max_upload_size: int | None = None) -> FastAPI:
    """Build the application around a catalog rooted at ``static_dir/groups``.

    Directories default to the values from :mod:`bandcatalog.config` and are
    created if missing.
    """
    static_dir = os.path.abspath(static_dir or STATIC_DIR)
    store = CatalogStore(
        os.path.join(static_dir, GROUPS_MOUNT),
        tmp_dir or TMP_DIR,
        max_upload_size or MAX_UPLOAD_SIZE,
    )
    store.init_dirs()

    app = FastAPI(title='bandcatalog')
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(groups.router)
    app.include_router(albums.router)
    app.include_router(tracks.router)

    app.mount('/static', StaticFiles(directory=static_dir), name='static')
    app.mount(f'/{GROUPS_MOUNT}', NoCacheStaticFiles(directory=store.groups_dir), name=GROUPS_MOUNT)
    return app


#############################
# Server entry point
#############################

def run_server(host: str = '0.0.0.0', port: int = 4001):
    app = create_app()
    logger.info("Catalog server running on http://%s:%s (root %s)", host, port, app.state.store.groups_dir)
    uvicorn.run(app, host=host, port=port)
