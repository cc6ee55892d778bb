from fastapi import FastAPI, HTTPException, Depends, Request, Query
from fastapi.responses import Response, FileResponse
from fastapi.security.api_key import APIKeyHeader
from pydantic import BaseModel
from starlette.staticfiles import StaticFiles
import os, logging, time
from typing import Any
from pathlib import Path

from prometheus_fastapi_instrumentator import Instrumentator
from imgtools.cache import CacheOptions
from imgtools.plugin import ImageTools, PluginOptions
from imgtools.presets import load_preset

API_KEY_NAME = "x-api-key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)

CACHE_CONTROL = "max-age=360000"

# ----- Opzioni del dev server (configurabili via env) -----
ROOT_DIR = Path(os.getenv("IMGTOOLS_ROOT", "."))
CACHE_DIR = os.getenv("IMGTOOLS_CACHE_DIR", str(ROOT_DIR / ".cache" / "imgtools"))
CACHE_RETENTION = int(os.getenv("IMGTOOLS_CACHE_RETENTION", "86400"))
CACHE_MODE = os.getenv("IMGTOOLS_CACHE_MODE", "mtime")
BASE = os.getenv("IMGTOOLS_BASE", "/")
PRESET = os.getenv("IMGTOOLS_PRESET")
# asset emessi da scripts/build_assets.py, serviti se la dir esiste
OUT_DIR = Path(os.getenv("IMGTOOLS_OUT_DIR", "dist/assets"))
PUBLIC_PATH = os.getenv("IMGTOOLS_PUBLIC_PATH", "/assets/")


def build_tools() -> ImageTools:
    return ImageTools(
        PluginOptions(
            command="serve",
            base=BASE,
            root=str(ROOT_DIR),
            default_directives=load_preset(PRESET) if PRESET else None,
            cache=CacheOptions(dir=CACHE_DIR, retention=CACHE_RETENTION, mode=CACHE_MODE),
        )
    )


tools = build_tools()

def get_api_key(api_key: str = Depends(api_key_header)):
    expected = os.environ.get("API_KEY")
    if not expected:
        # se non impostata, disabilita auth in dev
        return None
    if api_key is None:
        raise HTTPException(status_code=401, detail="Missing API key")
    if api_key != expected:
        raise HTTPException(status_code=403, detail="Forbidden")
    return api_key

app = FastAPI(
    title="imgtools dev server",
    version=os.getenv("APP_VERSION", "0.1.0"),
    description="Serves image variants generated from directive references during development.",
)

logger = logging.getLogger("imgtools.server")
handler = logging.StreamHandler()
handler.setFormatter(
    logging.Formatter(
        "%(asctime)s %(levelname)s path=%(path)s method=%(method)s status=%(status)s duration_ms=%(duration_ms)s msg=%(message)s"
    )
)
logger.addHandler(handler)
logger.setLevel(logging.INFO)
logger.propagate = False

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    dur = (time.time() - start) * 1000
    logger.info(
        "request",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": round(dur, 2),
        },
    )
    return response

Instrumentator().instrument(app).expose(app, endpoint="/metrics")

@app.get("/healthz")
def healthz():
    return {"status": "ok"}

@app.get("/version")
def version():
    return {
        "version": os.getenv("APP_VERSION", "0.1.0"),
        "git": os.getenv("GIT_SHA", "unknown"),
    }

class LoadResponse(BaseModel):
    ref: str
    export: Any = None

@app.get("/v1/load", response_model=LoadResponse)
def load(ref: str = Query(...), _api_key: str = Depends(get_api_key)):
    """Resolve a directive reference, e.g. ``photo.jpg?w=100;200&as=srcset``."""
    path = ref.split("?", 1)[0]
    if not (Path(tools.options.root) / path.lstrip("/")).is_file() and not Path(path).is_file():
        raise HTTPException(status_code=404, detail="Not found")
    result = tools.load(ref)
    if result is None:
        raise HTTPException(status_code=422, detail="Reference has no directives or is excluded")
    return {"ref": ref, "export": _jsonable(result)}

@app.get(tools.base_path + "{image_id}")
def generated_image(image_id: str):
    # un id sconosciuto è un bug interno, non un 404
    body, content_type = tools.serve(image_id)
    headers = {"Cache-Control": CACHE_CONTROL}
    if isinstance(body, Path):
        return FileResponse(str(body), media_type=content_type, headers=headers)
    return Response(content=body, media_type=content_type, headers=headers)

def _jsonable(value):
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items() if k != "image" and not isinstance(v, (bytes, bytearray))}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value

# ---- asset di build ----
if OUT_DIR.exists():
    app.mount(PUBLIC_PATH.rstrip("/"), StaticFiles(directory=OUT_DIR), name="assets")
