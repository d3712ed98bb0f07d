"""
FastAPI surface for the opening leak pipeline

Endpoints:
  POST /analyze  - Run a full analysis for one player
  GET /health
"""

import sys
from pathlib import Path
from typing import Literal

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from errors import PlayerNotFound, SourceUnavailable
from leak_report import AnalyzeOptions, analyze

app = FastAPI(title="Opening Leak Scanner API", version="1.0.0")

TimeControl = Literal["bullet", "blitz", "rapid", "classical", "all"]


class AnalyzeRequest(BaseModel):
    username: str = Field(..., min_length=1)
    source: Literal["lichess", "chesscom"] = "lichess"
    scan_mode: Literal["openings", "tactics", "both"] = "both"
    max_games: int = 200
    max_opening_moves: int = 12
    cp_loss_threshold: int = 100
    engine_depth: int = 10
    max_tactics: int = 25
    time_control: list[TimeControl] = ["all"]


@app.post("/analyze")
async def analyze_endpoint(body: AnalyzeRequest):
    """Run the pipeline and return the report."""
    try:
        options = AnalyzeOptions(**body.model_dump(exclude={"username"}))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        report = await analyze(body.username, options)
    except PlayerNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SourceUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))
    return report.to_dict()


@app.get("/health")
def health():
    return {"status": "ok"}
