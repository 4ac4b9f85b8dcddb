"""FastAPI application entrypoint for ezburn service mode."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..api import Service, current_service
from ..errors import ConfigurationError, EngineError
from ..models import Message
from ..plugins import discover_plugins


class MessageModel(BaseModel):
    text: str
    plugin_name: str = ""
    location: Optional[str] = None


class TransformRequest(BaseModel):
    code: str
    loader: str = "js"
    format: Optional[str] = None
    minify_whitespace: bool = False


class TransformResponse(BaseModel):
    code: str
    map: str = ""
    warnings: List[MessageModel] = Field(default_factory=list)


class AnalyzeRequest(BaseModel):
    metafile: Dict[str, Any]


class AnalyzeResponse(BaseModel):
    report: str


class BuildRequest(BaseModel):
    entry_points: List[str] = Field(default_factory=list)
    stdin: Optional[Dict[str, Any]] = None
    bundle: bool = False
    format: Optional[str] = None
    minify_whitespace: bool = False
    metafile: bool = False
    abs_working_dir: Optional[str] = None
    plugins: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class OutputModel(BaseModel):
    path: str
    text: str


class BuildResponse(BaseModel):
    errors: List[MessageModel]
    warnings: List[MessageModel]
    output_files: List[OutputModel]
    metafile: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str
    backend: str


def _message(message: Message) -> MessageModel:
    return MessageModel(text=message.text, plugin_name=message.plugin_name, location=message.location)


def create_app(service_factory: Callable[[], Service] = current_service) -> FastAPI:
    """Create the FastAPI application exposing the build API."""

    app = FastAPI(title="ezburn service", version="1.0.0")

    async def get_service() -> Service:
        return service_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health(service: Service = Depends(get_service)) -> HealthResponse:
        return HealthResponse(status="ok", backend=service.backend.name)

    @app.post("/transform", response_model=TransformResponse)
    async def transform(payload: TransformRequest, service: Service = Depends(get_service)) -> TransformResponse:
        result = await service.transform(
            payload.code,
            loader=payload.loader,
            format=payload.format,
            minify_whitespace=payload.minify_whitespace,
        )
        return TransformResponse(
            code=result.code,
            map=result.map,
            warnings=[_message(message) for message in result.warnings],
        )

    @app.post("/analyze-metafile", response_model=AnalyzeResponse)
    async def analyze(payload: AnalyzeRequest, service: Service = Depends(get_service)) -> AnalyzeResponse:
        return AnalyzeResponse(report=await service.analyze_metafile(payload.metafile))

    @app.post("/build", response_model=BuildResponse)
    async def build(payload: BuildRequest, service: Service = Depends(get_service)) -> BuildResponse:
        options: Dict[str, Any] = {
            "entry_points": payload.entry_points,
            "bundle": payload.bundle,
            "format": payload.format,
            "minify_whitespace": payload.minify_whitespace,
            "metafile": payload.metafile,
            "write": False,
            "plugins": discover_plugins(payload.plugins),
        }
        if payload.stdin is not None:
            options["stdin"] = payload.stdin
        if payload.abs_working_dir:
            options["abs_working_dir"] = payload.abs_working_dir
        result = await service.build(options)
        return BuildResponse(
            errors=[_message(message) for message in result.errors],
            warnings=[_message(message) for message in result.warnings],
            output_files=[OutputModel(path=output.path, text=output.text) for output in result.output_files or []],
            metafile=result.metafile,
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(_: Any, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(EngineError)
    async def engine_error_handler(_: Any, exc: EngineError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)
