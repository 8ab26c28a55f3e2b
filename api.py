"""
api.py - FastAPI HTTP layer for AutoMatch.

Endpoints:
  - GET  /health
  - POST /automatch/run
  - GET  /deals/{deal_id}/eligibility
  - GET  /deals/{deal_id}/highlights

No scoring logic lives here. The marketplace directory is loaded once, on
first use, and only read afterwards.
"""

from __future__ import annotations

import threading
from functools import lru_cache
from typing import Any, Optional

import uvicorn
from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from config import AutoMatchSettings, load_settings
from directory import DealNotFoundError, MarketplaceDirectory
from eligibility import evaluate_eligibility
from explain import deal_highlights, format_eligibility_json, format_match_set_json
from geography import LATEST_YEAR
from logging_config import get_logger, level_from_name, setup_logging
from match import run_match

logger = get_logger("automatch-api")

app = FastAPI(
    title="AutoMatch API",
    version="1.0.0",
)

# Allows local UI use from file:// or another local host/port.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

_directory: Optional[MarketplaceDirectory] = None
_directory_lock = threading.Lock()


class RunRequest(BaseModel):
    """Body of POST /automatch/run."""

    model_config = ConfigDict(extra="forbid")

    deal_id: str = Field(..., min_length=1)
    program_year: Optional[StrictInt] = Field(default=None, gt=0)
    max_results: Optional[StrictInt] = Field(default=None, ge=0)
    min_score: Optional[StrictInt] = Field(default=None, ge=0, le=100)


@lru_cache(maxsize=1)
def get_settings() -> AutoMatchSettings:
    """Settings are read from the environment on first use, not at import."""
    return load_settings()


def get_directory(settings: AutoMatchSettings = Depends(get_settings)) -> MarketplaceDirectory:
    """Load the marketplace snapshot once per process."""
    global _directory

    with _directory_lock:
        if _directory is None:
            try:
                _directory = MarketplaceDirectory.from_files(settings.data_file, settings.providers_csv)
            except (FileNotFoundError, ValueError) as exc:
                logger.error(
                    "api_directory_error | data=%s | error_type=%s | error=%s",
                    settings.data_file,
                    type(exc).__name__,
                    exc,
                )
                raise HTTPException(status_code=503, detail=f"Marketplace data unavailable: {exc}") from exc
        return _directory


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("api_bad_request | path=%s | errors=%s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": str(exc.errors())})


@app.get("/health")
def health() -> dict[str, str]:
    """Service health check."""
    return {"status": "ok"}


@app.post("/automatch/run")
def automatch_run(
    payload: Any = Body(...),
    directory: MarketplaceDirectory = Depends(get_directory),
    settings: AutoMatchSettings = Depends(get_settings),
) -> dict[str, Any]:
    """Rank providers for one deal."""
    try:
        request = RunRequest.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        result_set = run_match(
            request.deal_id,
            program_year=request.program_year,
            max_results=request.max_results,
            directory=directory,
            settings=settings,
            min_score=request.min_score,
        )
    except DealNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return format_match_set_json(result_set)


def _deal_or_404(directory: MarketplaceDirectory, deal_id: str):
    try:
        return directory.get_deal(deal_id)
    except DealNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/deals/{deal_id}/eligibility")
def deal_eligibility(
    deal_id: str,
    directory: MarketplaceDirectory = Depends(get_directory),
) -> dict[str, Any]:
    deal = _deal_or_404(directory, deal_id)
    return {"deal_id": deal.id, "eligibility": format_eligibility_json(evaluate_eligibility(deal))}


@app.get("/deals/{deal_id}/highlights")
def deal_highlights_endpoint(
    deal_id: str,
    program_year: Optional[int] = None,
    directory: MarketplaceDirectory = Depends(get_directory),
    settings: AutoMatchSettings = Depends(get_settings),
) -> dict[str, Any]:
    """Provider-independent highlights, shown before a match has been run."""
    deal = _deal_or_404(directory, deal_id)
    year = program_year if program_year is not None else (settings.program_year or LATEST_YEAR)
    return {
        "deal_id": deal.id,
        "program_year": year,
        "highlights": deal_highlights(deal, year, limit=settings.reason_limit),
    }


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(level=level_from_name(settings.log_level))
    uvicorn.run("api:app", host="0.0.0.0", port=settings.port, reload=False)
