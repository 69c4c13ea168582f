"""Pixel Battle backend — FastAPI application."""

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from fastapi import FastAPI, HTTPException, Request

logger = logging.getLogger(__name__)

# Ensure logger outputs to console
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    logger.setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import limiter, settings

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        traces_sample_rate=0.1,
        environment=settings.environment,
    )

from challenges import Challenge, get_all_challenges, get_challenge_by_id, target_image_locator
from evaluation import (
    CaptureTimeoutError,
    ChallengeEvaluator,
    ComparisonError,
    ImageLoadError,
    ShapeMismatchError,
    SurfaceAccessError,
)
from screenshot_capture import ScreenshotCapture

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(title="Pixel Battle", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared headless browser, started lazily on first evaluation
screenshot_capture = ScreenshotCapture()
evaluator = ChallengeEvaluator(screenshot_capture)


@app.on_event("shutdown")
async def _close_browser() -> None:
    await screenshot_capture.close()


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class CompareRequest(BaseModel):
    challenge_id: str
    html: str
    generate_diff: bool = False


class CompareResponse(BaseModel):
    challenge_id: str
    score: float  # 0-100
    matching_pixels: int
    total_pixels: int
    diff_image: str | None = None  # PNG data URL when generate_diff is set


class CompareModelsRequest(BaseModel):
    challenge_id: str
    outputs: dict[str, str]  # model id -> generated HTML/CSS
    generate_diff: bool = False


class ModelComparison(BaseModel):
    status: str  # "ok" or "unavailable"
    score: float | None = None
    matching_pixels: int | None = None
    total_pixels: int | None = None
    diff_image: str | None = None
    error: str | None = None
    error_type: str | None = None


class CompareModelsResponse(BaseModel):
    challenge_id: str
    results: dict[str, ModelComparison]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_ERROR_STATUS: list[tuple[type[ComparisonError], int]] = [
    (CaptureTimeoutError, 504),
    (ImageLoadError, 502),
    (SurfaceAccessError, 422),
    (ShapeMismatchError, 500),
]


def _status_for(error: ComparisonError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def _require_scorable_challenge(challenge_id: str) -> Challenge:
    challenge = get_challenge_by_id(challenge_id)
    if challenge is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    if target_image_locator(challenge) is None:
        raise HTTPException(status_code=400, detail="Challenge has no target image")
    return challenge


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Challenge endpoints
# ---------------------------------------------------------------------------


@app.get("/api/challenges")
async def list_challenges(year: int | None = None, month: int | None = None):
    challenges = get_all_challenges()
    if year is not None:
        challenges = [c for c in challenges if c.year == year]
    if month is not None:
        challenges = [c for c in challenges if c.month == month]
    return challenges


@app.get("/api/challenges/{challenge_id}")
async def get_challenge(challenge_id: str):
    challenge = get_challenge_by_id(challenge_id)
    if challenge is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return challenge


# ---------------------------------------------------------------------------
# Comparison endpoints
# ---------------------------------------------------------------------------


@app.post("/api/compare")
@limiter.limit(settings.compare_rate_limit)
async def compare_html(req: CompareRequest, request: Request) -> CompareResponse:
    """Render generated HTML and score it against the challenge's target image."""
    challenge = _require_scorable_challenge(req.challenge_id)
    logger.info(
        f"[Compare] Challenge {req.challenge_id}: scoring {len(req.html)} characters of HTML"
    )

    try:
        result = await evaluator.evaluate_html(challenge, req.html, generate_diff=req.generate_diff)
    except ComparisonError as e:
        logger.error(f"[Compare] Comparison unavailable for {req.challenge_id}: {e}")
        raise HTTPException(
            status_code=_status_for(e),
            detail=f"Comparison unavailable: {e}",
        ) from e

    return CompareResponse(challenge_id=req.challenge_id, **result.to_dict(include_diff=True))


@app.post("/api/compare-models")
@limiter.limit(settings.compare_rate_limit)
async def compare_models(req: CompareModelsRequest, request: Request) -> CompareModelsResponse:
    """Score several models' outputs for one challenge, decoding the target once."""
    challenge = _require_scorable_challenge(req.challenge_id)
    logger.info(f"[Compare] Challenge {req.challenge_id}: scoring {len(req.outputs)} model outputs")

    try:
        outcomes = await evaluator.evaluate_outputs(
            challenge, req.outputs, generate_diff=req.generate_diff
        )
    except ComparisonError as e:
        logger.error(f"[Compare] Comparison unavailable for {req.challenge_id}: {e}")
        raise HTTPException(
            status_code=_status_for(e),
            detail=f"Comparison unavailable: {e}",
        ) from e

    results: dict[str, ModelComparison] = {}
    for model_id, outcome in outcomes.items():
        if isinstance(outcome, ComparisonError):
            results[model_id] = ModelComparison(
                status="unavailable",
                error=str(outcome),
                error_type=type(outcome).__name__,
            )
        else:
            results[model_id] = ModelComparison(
                status="ok", **outcome.to_dict(include_diff=req.generate_diff)
            )

    return CompareModelsResponse(challenge_id=req.challenge_id, results=results)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
