from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from scoreboard.api.dependencies import get_client_ip, get_current_admin, get_db
from scoreboard.models.user import User
from scoreboard.schemas import score_schemas
from scoreboard.services import score_service

router = APIRouter()

@router.post("/submit", response_model=score_schemas.SubmitResult, status_code=status.HTTP_201_CREATED)
async def submit_score_endpoint(
    submission_in: score_schemas.ScoreSubmissionCreate,
    auto_accept: bool = True,
    db: Session = Depends(get_db),
):
    # Public judge flow, accepted as a system action
    return score_service.submit_score(db=db, data=submission_in, auto_accept=auto_accept)

@router.post("/bulk-accept", response_model=score_schemas.BulkAcceptResult)
async def bulk_accept_endpoint(
    request_in: score_schemas.BulkAcceptRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    ip_address: Optional[str] = Depends(get_client_ip),
):
    return score_service.bulk_accept(
        db=db, event_id=request_in.event_id, submission_ids=request_in.score_ids,
        reviewer_id=admin.id, ip_address=ip_address,
    )

@router.get("/event/{event_id}", response_model=List[score_schemas.ScoreSubmissionRead])
async def list_event_scores_endpoint(
    event_id: int,
    status: Optional[str] = None,
    score_type: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return score_service.list_submissions(db=db, event_id=event_id, status=status, score_type=score_type)

@router.post("/event/{event_id}/resync", response_model=score_schemas.ResyncResult)
async def resync_event_endpoint(
    event_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return score_service.resync_event(db=db, event_id=event_id)

@router.get("/{submission_id}", response_model=score_schemas.ScoreSubmissionRead)
async def get_score_endpoint(
    submission_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return score_service.get_submission(db=db, submission_id=submission_id)

@router.post("/{submission_id}/accept-event", response_model=score_schemas.AcceptResult)
async def accept_score_endpoint(
    submission_id: int,
    request_in: score_schemas.AcceptRequest = score_schemas.AcceptRequest(),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    ip_address: Optional[str] = Depends(get_client_ip),
):
    return score_service.accept_score(
        db=db, submission_id=submission_id, force=request_in.force, reviewer_id=admin.id, ip_address=ip_address,
    )

@router.post("/{submission_id}/reject", response_model=score_schemas.ScoreSubmissionRead)
async def reject_score_endpoint(
    submission_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    ip_address: Optional[str] = Depends(get_client_ip),
):
    return score_service.reject_score(db=db, submission_id=submission_id, reviewer_id=admin.id, ip_address=ip_address)

@router.post("/{submission_id}/revert-event", response_model=score_schemas.RevertResult)
async def revert_score_endpoint(
    submission_id: int,
    request_in: score_schemas.RevertRequest = score_schemas.RevertRequest(),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    ip_address: Optional[str] = Depends(get_client_ip),
):
    return score_service.revert_score(
        db=db, submission_id=submission_id, reviewer_id=admin.id,
        dry_run=request_in.dry_run, confirm=request_in.confirm, ip_address=ip_address,
    )
