"""
Academy API - courses (some PRO only), onboarding tutorials and the suggestion box
"""
from typing import List

import logfire
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session

from auth import get_current_profile
from database import get_db, CourseDB, ProfileDB, SuggestionDB, TutorialDB
from entitlements import resolve_entitlement
from models.academy_models import CourseOut, SuggestionIn, SuggestionOut, TutorialOut

router = APIRouter()


def course_out(course: CourseDB, is_pro: bool) -> CourseOut:
    out = CourseOut.model_validate(course)
    if course.pro_only and not is_pro:
        out.locked = True
        out.video_url = None
    return out


@router.get("/courses", response_model=List[CourseOut])
async def list_courses(profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    is_pro = resolve_entitlement(db, profile.id).is_pro
    courses = db.query(CourseDB).order_by(CourseDB.sort_order.asc(), CourseDB.title.asc()).all()
    return [course_out(c, is_pro) for c in courses]


@router.get("/courses/{course_id}", response_model=CourseOut)
async def get_course(course_id: str, profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    course = db.query(CourseDB).filter(CourseDB.id == course_id).first()
    if not course:
        raise HTTPException(status_code=404, detail="Curso não encontrado")

    out = course_out(course, resolve_entitlement(db, profile.id).is_pro)
    if out.locked:
        raise HTTPException(status_code=403, detail="Conteúdo exclusivo do plano PRO")
    return out


@router.get("/tutorials", response_model=List[TutorialOut])
async def list_tutorials(profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    return db.query(TutorialDB).order_by(TutorialDB.step.asc()).all()


@router.post("/suggestions", response_model=SuggestionOut, status_code=201)
async def create_suggestion(
    request: SuggestionIn,
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    suggestion = SuggestionDB(
        user_id=profile.id,
        user_name=profile.full_name or profile.email,
        title=request.title.strip(),
        content=request.content.strip(),
        status="pending",
    )
    db.add(suggestion)
    db.commit()
    db.refresh(suggestion)
    logfire.info("Suggestion submitted", user_id=profile.id, suggestion_id=suggestion.id)
    return suggestion


@router.get("/suggestions/mine", response_model=List[SuggestionOut])
async def list_my_suggestions(profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    return (
        db.query(SuggestionDB)
        .filter(SuggestionDB.user_id == profile.id)
        .order_by(SuggestionDB.created_at.desc())
        .all()
    )
