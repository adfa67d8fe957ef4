from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

from writewise.db import curriculum_store, progress_store
from writewise.db.database import get_db
from writewise.models.assessment import Rejection
from writewise.models.progress import ChildCreate, PlacementRequest, PreferenceCreate
from writewise.services.ai_client import LLMResponseError
from writewise.services.catalog import tier_for_age
from writewise.services.learner_profile import (
    build_learner_context,
    build_learner_profile,
    format_learner_context_for_prompt,
)
from writewise.services.placement import place_child

router = APIRouter(prefix="/api", tags=["children"])


def rejection_response(rejection: Rejection) -> JSONResponse:
    """Expected refusals go back as {error, message, ...details}, details in camelCase."""
    details = {to_camel(key): value for key, value in rejection.details.items()}
    return JSONResponse(
        status_code=rejection.status_code,
        content={"error": rejection.error, "message": rejection.message, **details},
    )


def llm_error_response(message: str = "Something went wrong while checking this. Please try again.") -> JSONResponse:
    return JSONResponse(status_code=502, content={"error": "llm_error", "message": message})


async def require_child(db, child_id: int) -> dict:
    child = await curriculum_store.get_child(db, child_id)
    if not child:
        raise HTTPException(status_code=404, detail="Child not found")
    return child


@router.post("/children")
async def create_child(body: ChildCreate, db=Depends(get_db)):
    tier = body.tier or tier_for_age(body.age)
    child_id = await curriculum_store.create_child(db, body.name, body.age, tier)
    await db.commit()
    return await curriculum_store.get_child(db, child_id)


@router.get("/children/{child_id}")
async def get_child(child_id: int, db=Depends(get_db)):
    return await require_child(db, child_id)


@router.post("/placement/{child_id}")
async def submit_placement(child_id: int, body: PlacementRequest, db=Depends(get_db)):
    """Three prompt/response pairs -> recommended tier, stored with the child's new tier."""
    child = await require_child(db, child_id)
    try:
        result = await place_child(db, child, body.prompts, body.responses)
    except LLMResponseError:
        return llm_error_response("Failed to analyze writing samples. Please try again.")
    if isinstance(result, Rejection):
        return rejection_response(result)
    return result


@router.post("/children/{child_id}/preferences")
async def add_preference(child_id: int, body: PreferenceCreate, db=Depends(get_db)):
    await require_child(db, child_id)
    await progress_store.add_preference(db, child_id, body.category, body.value)
    await db.commit()
    return {"preferences": await progress_store.list_preferences(db, child_id)}


@router.get("/children/{child_id}/learner-profile")
async def get_learner_profile(child_id: int, db=Depends(get_db)):
    """Fresh profile plus the context block the coach sees."""
    child = await require_child(db, child_id)
    profile = await build_learner_profile(db, child_id)
    await db.commit()
    if profile is None:
        return {"profile": None, "context": None, "prompt": ""}
    context = build_learner_context(profile, child["name"])
    return {
        "profile": profile.model_dump(),
        "context": context.model_dump(),
        "prompt": format_learner_context_for_prompt(context),
    }
