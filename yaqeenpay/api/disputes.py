# yaqeenpay/api/disputes.py

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user, get_current_admin_user
from yaqeenpay.models.dispute import DisputeStatusEnum
from yaqeenpay.models.user import User
from yaqeenpay.schemas.order import EvidenceRequest, AdminNotesRequest, \
    DisputeResolveRequest
from yaqeenpay.services.dispute_service import DisputeService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, paginate, log_admin_operation

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
@handle_operation_errors("list disputes")
async def list_disputes(
        dispute_status: Optional[DisputeStatusEnum] = Query(None,
                                                            alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    """All disputes, admin only"""
    result = paginate(DisputeService.list_all(db, dispute_status), page,
                      page_size)
    result["items"] = [DisputeService.to_dict(d) for d in result["items"]]
    return create_success_response("disputes", result, current_user.id)


@router.get("/user")
@handle_operation_errors("list user disputes")
async def list_user_disputes(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    result = paginate(DisputeService.list_for_user(db, current_user.id), page,
                      page_size)
    result["items"] = [DisputeService.to_dict(d) for d in result["items"]]
    return create_success_response("user_disputes", result, current_user.id)


@router.get("/{dispute_id}")
@handle_operation_errors("get dispute")
async def get_dispute(
        dispute_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    dispute = DisputeService.get(db, dispute_id, current_user)
    return create_success_response("dispute", DisputeService.to_dict(dispute),
                                   current_user.id)


@router.post("/{dispute_id}/evidence")
@handle_operation_errors("add dispute evidence")
async def add_evidence(
        dispute_id: int,
        payload: EvidenceRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    dispute = DisputeService.add_evidence(db, dispute_id, current_user,
                                          payload.urls)
    return create_success_response("dispute_evidence_added",
                                   DisputeService.to_dict(dispute),
                                   current_user.id)


@router.post("/{dispute_id}/escalate")
@handle_operation_errors("escalate dispute")
async def escalate_dispute(
        dispute_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    dispute = DisputeService.escalate(db, dispute_id, current_user)
    return create_success_response("dispute_escalated",
                                   DisputeService.to_dict(dispute),
                                   current_user.id)


@router.post("/{dispute_id}/notes")
@handle_operation_errors("add dispute notes")
async def add_admin_notes(
        dispute_id: int,
        payload: AdminNotesRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    dispute = DisputeService.add_admin_notes(db, dispute_id, current_user,
                                             payload.notes)
    log_admin_operation("dispute_notes", current_user.id,
                        {"dispute_id": dispute_id}, db,
                        entity_type="dispute", entity_id=dispute_id)
    return create_success_response("dispute_notes_added",
                                   DisputeService.to_dict(dispute),
                                   current_user.id)


@router.post("/{dispute_id}/resolve")
@handle_operation_errors("resolve dispute")
async def resolve_dispute(
        dispute_id: int,
        payload: DisputeResolveRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    """Settle the escrow according to the resolution"""
    dispute = DisputeService.resolve(db, dispute_id, current_user,
                                     payload.resolution, payload.notes,
                                     payload.buyer_refund_amount)
    log_admin_operation("resolve_dispute", current_user.id, {
        "dispute_id": dispute_id,
        "resolution": payload.resolution.value,
        "buyer_refund_amount": payload.buyer_refund_amount
    }, db, entity_type="dispute", entity_id=dispute_id)
    return create_success_response("dispute_resolved",
                                   DisputeService.to_dict(dispute),
                                   current_user.id)
