from fastapi import APIRouter, Depends, HTTPException

from writewise.db.database import get_db
from writewise.models.assessment import Rejection
from writewise.models.curriculum import GenerateCurriculumRequest, ReviseCurriculumRequest
from writewise.routes.children import llm_error_response, rejection_response, require_child
from writewise.services.ai_client import LLMResponseError
from writewise.services.curriculum_planner import (
    generate_curriculum,
    get_curriculum_view,
    revise_curriculum,
)

router = APIRouter(prefix="/api/curriculum", tags=["curriculum"])


@router.post("/{child_id}/generate")
async def generate(child_id: int, body: GenerateCurriculumRequest, db=Depends(get_db)):
    """New active curriculum; falls back to a sequential plan when the model can't help."""
    child = await require_child(db, child_id)
    return await generate_curriculum(
        db,
        child,
        week_count=body.week_count,
        lessons_per_week=body.lessons_per_week,
        focus_areas=list(body.focus_areas),
    )


@router.get("/{child_id}")
async def get_curriculum(child_id: int, db=Depends(get_db)):
    await require_child(db, child_id)
    view = await get_curriculum_view(db, child_id)
    if view is None:
        raise HTTPException(status_code=404, detail="No curriculum found")
    return view


@router.post("/{child_id}/revise")
async def revise(child_id: int, body: ReviseCurriculumRequest, db=Depends(get_db)):
    child = await require_child(db, child_id)
    try:
        result = await revise_curriculum(db, child, body.reason, body.description)
    except LLMResponseError:
        return llm_error_response("Failed to generate revised curriculum. Please try again.")
    if isinstance(result, Rejection):
        return rejection_response(result)
    return result
