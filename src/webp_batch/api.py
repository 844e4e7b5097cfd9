from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from .core import WebPConverter
from .errors import ConversionError
from .models import ConversionOptions
from .report import render_text_summary
from .settings import load_effective_config

TOOL_NAME = "convert_to_webp"
TOOL_DESCRIPTION = (
    "Batch convert images (PNG, JPG, JPEG) to WebP format with customizable options. "
    "Recursively scans directories and provides detailed conversion reports."
)


def _default_threads() -> int:
    return os.cpu_count() or 1


class ConvertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    src: str = Field(".", description="Source directory to scan for images")
    quality: int = Field(75, ge=0, le=100, description="WebP quality (0-100)")
    lossless: bool = Field(False, description="Use lossless encoding (recommended for PNG images)")
    overwrite: bool = Field(False, description="Replace original files with WebP versions")
    threads: int = Field(default_factory=_default_threads, ge=1, description="Number of concurrent conversions")
    preserve_meta: bool = Field(False, alias="preserveMeta", description="Preserve EXIF and ICC metadata")
    flat: str | None = Field(None, description="Output all WebP files to specified directory")

    def to_options(self) -> ConversionOptions:
        return ConversionOptions(
            src=Path(self.src),
            quality=self.quality,
            lossless=self.lossless,
            overwrite=self.overwrite,
            threads=self.threads,
            preserve_metadata=self.preserve_meta,
            flat=Path(self.flat) if self.flat else None,
        )


class TextContent(BaseModel):
    type: str = "text"
    text: str


class ToolResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent]
    is_error: bool = Field(False, alias="isError")


def tool_descriptor() -> dict[str, Any]:
    return {
        "name": TOOL_NAME,
        "description": TOOL_DESCRIPTION,
        "inputSchema": ConvertRequest.model_json_schema(by_alias=True),
    }


def run_tool(converter: WebPConverter, request: ConvertRequest) -> ToolResponse:
    try:
        report = converter.batch_convert(request.to_options())
    except ConversionError as exc:
        return ToolResponse(
            content=[TextContent(text=f"Conversion failed: {exc}")],
            is_error=True,
        )
    return ToolResponse(content=[TextContent(text=render_text_summary(report))], is_error=not report.ok)


def create_app(config_path: Path | None = None, *, require_enabled: bool = True) -> FastAPI:
    config = load_effective_config(config_path)
    if require_enabled and not config.runtime.enable_local_api:
        raise RuntimeError("Local API is disabled. Enable it via config.runtime.enable_local_api")
    converter = WebPConverter(config)
    app = FastAPI(title="WebP Batch Converter", version="1.0.0")
    app.state.config = config
    app.state.converter = converter

    @app.get("/health", summary="Health check")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/tools", summary="List callable tools")
    def list_tools() -> dict[str, list[dict[str, Any]]]:
        return {"tools": [tool_descriptor()]}

    @app.post("/tools/{name}", summary="Call a tool", response_model_by_alias=True)
    async def call_tool(name: str, request: ConvertRequest) -> ToolResponse:
        if name != TOOL_NAME:
            raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
        return await asyncio.to_thread(run_tool, converter, request)

    return app


__all__ = ["ConvertRequest", "ToolResponse", "create_app", "run_tool", "tool_descriptor"]
