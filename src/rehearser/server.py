import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from rehearser.application.config import resolve_config
from rehearser.application.factory import Services, build_services
from rehearser.application.id_service import generate_item_id
from rehearser.consts import VERSION
from rehearser.domain.errors import (
    InvalidScore,
    PersistenceFailure,
    PlanAlreadyClosed,
    PlanNotFound,
)
from rehearser.domain.scheduling.models import (
    ConfidenceLevel,
    Item,
    ReviewPlan,
    ReviewStatistics,
)

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("rehearser.server")

NOT_SAVED = "Review not saved, please retry."


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"rehearser server v{VERSION} starting up...")
    yield
    logger.info("rehearser server shutting down...")


app = FastAPI(
    title="rehearser",
    description="Spaced-repetition scheduling API for algorithm practice.",
    version=VERSION,
    lifespan=lifespan,
)


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services(resolve_config())


ServicesDep = Annotated[Services, Depends(get_services)]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class PlanResponse(BaseModel):
    id: str
    item_id: str
    status: str
    interval_level: str
    ease_factor: float
    difficulty_adjustment: float
    scheduled_at: datetime
    score: int | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_plan(cls, plan: ReviewPlan) -> "PlanResponse":
        return cls(
            id=plan.id,
            item_id=plan.item_id,
            status=plan.status.value,
            interval_level=plan.interval_level.name.lower(),
            ease_factor=plan.ease_factor,
            difficulty_adjustment=plan.difficulty_adjustment,
            scheduled_at=plan.scheduled_at,
            score=plan.score,
            completed_at=plan.completed_at,
        )


class CreateItemRequest(BaseModel):
    title: str
    category: str = ""


class CreateItemResponse(BaseModel):
    item_id: str
    plan: PlanResponse


class CompleteRequest(BaseModel):
    score: int
    confidence: int = Field(default=int(ConfidenceLevel.MEDIUM), ge=1, le=5)
    time_spent: float = Field(default=0, ge=0)


class PostponeRequest(BaseModel):
    days: int = Field(ge=0)


class StatisticsResponse(BaseModel):
    total_reviews: int
    average_score: float
    completion_rate: float
    average_interval_seconds: float
    current_streak: int
    longest_streak: int
    reviews_this_week: int
    reviews_this_month: int

    @classmethod
    def from_stats(cls, stats: ReviewStatistics) -> "StatisticsResponse":
        return cls(
            total_reviews=stats.total_reviews,
            average_score=stats.average_score,
            completion_rate=stats.completion_rate,
            average_interval_seconds=stats.average_interval.total_seconds(),
            current_streak=stats.current_streak,
            longest_streak=stats.longest_streak,
            reviews_this_week=stats.reviews_this_week,
            reviews_this_month=stats.reviews_this_month,
        )


class CategoryCalibrationResponse(BaseModel):
    category: str
    samples: int
    mean_score: float
    factor: float
    plans_adjusted: int


class CalibrationResponse(BaseModel):
    categories: list[CategoryCalibrationResponse]
    insufficient: dict[str, int]
    plans_adjusted: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _plan_or_404(services: Services, plan_id: str) -> ReviewPlan:
    plan = services.store.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"Review plan {plan_id} not found")
    return plan


def _item_or_404(services: Services, item_id: str) -> Item:
    item = services.store.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
    return item


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.post("/items", response_model=CreateItemResponse, status_code=201)
def create_item(req: CreateItemRequest, services: ServicesDep):
    item = Item(id=generate_item_id(), title=req.title, category=req.category)
    try:
        plan = services.engine.create_initial_plan(item)
    except PersistenceFailure as e:
        logger.error(f"Item creation failed: {e}")
        raise HTTPException(status_code=503, detail="Item not saved, please retry.")
    return CreateItemResponse(item_id=item.id, plan=PlanResponse.from_plan(plan))


@app.get("/reviews/due", response_model=list[PlanResponse])
def due_reviews(services: ServicesDep, limit: int | None = None):
    return [PlanResponse.from_plan(p) for p in services.due.get_due_reviews(limit=limit)]


@app.get("/reviews/today", response_model=list[PlanResponse])
def today_reviews(services: ServicesDep):
    return [PlanResponse.from_plan(p) for p in services.due.get_today_reviews()]


@app.get("/reviews/overdue", response_model=list[PlanResponse])
def overdue_reviews(services: ServicesDep):
    return [PlanResponse.from_plan(p) for p in services.due.get_overdue_reviews()]


@app.post("/reviews/{plan_id}/complete", response_model=PlanResponse)
def complete_review(plan_id: str, req: CompleteRequest, services: ServicesDep):
    """
    Complete a review. Responds with the successor plan, or with the untouched
    plan when the score was ignored.
    """
    plan = _plan_or_404(services, plan_id)
    try:
        result = services.engine.complete_review(plan, req.score, req.confidence, req.time_spent)
    except InvalidScore as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PlanNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PlanAlreadyClosed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceFailure as e:
        logger.error(f"Completing {plan_id} failed: {e}")
        raise HTTPException(status_code=503, detail=f"{NOT_SAVED} (score {req.score})")

    if result is None:
        raise HTTPException(status_code=404, detail=f"Item for plan {plan_id} not found")
    return PlanResponse.from_plan(result)


@app.post("/reviews/{plan_id}/skip", response_model=PlanResponse)
def skip_review(plan_id: str, services: ServicesDep):
    plan = _plan_or_404(services, plan_id)
    try:
        result = services.engine.skip_review(plan)
    except PlanNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PlanAlreadyClosed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceFailure as e:
        logger.error(f"Skipping {plan_id} failed: {e}")
        raise HTTPException(status_code=503, detail=NOT_SAVED)

    if result is None:
        raise HTTPException(status_code=404, detail=f"Item for plan {plan_id} not found")
    return PlanResponse.from_plan(result)


@app.post("/reviews/{plan_id}/postpone")
def postpone_review(plan_id: str, req: PostponeRequest, services: ServicesDep):
    plan = _plan_or_404(services, plan_id)
    if plan.status.is_terminal:
        raise HTTPException(
            status_code=409, detail=str(PlanAlreadyClosed(plan.id, plan.status.value))
        )
    if not services.engine.postpone_review(plan, req.days):
        raise HTTPException(status_code=503, detail=NOT_SAVED)
    return {"postponed": True}


@app.get("/items/{item_id}/statistics", response_model=StatisticsResponse | None)
def item_statistics(item_id: str, services: ServicesDep):
    """Statistics for an item; null until it has a completed review."""
    item = _item_or_404(services, item_id)
    stats = services.statistics.get_review_statistics(item)
    return StatisticsResponse.from_stats(stats) if stats else None


@app.get("/items/{item_id}/next-review")
def next_review(item_id: str, services: ServicesDep):
    item = _item_or_404(services, item_id)
    return {"next_review": services.due.predict_next_review_date(item)}


@app.post("/calibrate", response_model=CalibrationResponse)
def calibrate(services: ServicesDep):
    try:
        report = services.calibrator.adjust_difficulty_based_on_performance()
    except PersistenceFailure as e:
        logger.error(f"Calibration failed: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Calibration not saved, please retry.")
    return CalibrationResponse(
        categories=[
            CategoryCalibrationResponse(
                category=c.category,
                samples=c.samples,
                mean_score=c.mean_score,
                factor=c.factor,
                plans_adjusted=c.plans_adjusted,
            )
            for c in report.categories
        ],
        insufficient=report.insufficient,
        plans_adjusted=report.plans_adjusted,
    )
