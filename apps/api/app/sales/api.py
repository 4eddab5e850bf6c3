from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.context import get_correlation_id, set_principal_id
from app.core.auth import AuthUser, get_current_user as get_auth_user
from app.core.database import get_db
from app.platform.security.context import AuthorizationContext
from app.platform.security.errors import (
    AuthorizationDenied,
    ForbiddenFieldError,
    NotFound,
    PrincipalNotFound,
    UnconfiguredPolicy,
    UnknownRole,
)
from app.platform.security.registry import policy_registry
from app.platform.security.roles import Role
from app.sales.derivation import proposal_derivation_service
from app.sales.errors import CascadeTargetMissing
from app.sales.schemas import DerivedProposalRead, PolicyRuleRead
from app.sales.service import COLLECTIONS, Collection, authorization_middleware, sales_record_service


logger = logging.getLogger("app.sales.api")

router = APIRouter(prefix="/api/sales", tags=["sales"])
authz_router = APIRouter(prefix="/api/authz", tags=["authz"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(request: Request, *, status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=get_correlation_id() or getattr(request.state, "correlation_id", None),
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload.__dict__))


def handle_failure(request: Request, exc: Exception, code: str) -> JSONResponse:
    if isinstance(exc, AuthorizationDenied):
        details = {"entity": exc.entity_type, "operation": exc.operation, "phase": exc.phase, "reason": exc.reason}
        return error_response(request, status_code=status.HTTP_403_FORBIDDEN, code=code, message=str(exc), details=details)
    if isinstance(exc, NotFound):
        return error_response(request, status_code=status.HTTP_404_NOT_FOUND, code=code, message=str(exc))
    if isinstance(exc, ForbiddenFieldError):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=code,
            message=str(exc),
            details={"forbidden_fields": exc.fields},
        )
    if isinstance(exc, ValidationError):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=code,
            message="invalid payload",
            details=exc.errors(include_url=False, include_context=False),
        )
    if isinstance(exc, CascadeTargetMissing):
        return error_response(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code=code,
            message=str(exc),
            details={"rule": exc.rule, "target_type": exc.target_type, "target_id": exc.target_id},
        )
    if isinstance(exc, UnconfiguredPolicy):
        logger.error("authz.unconfigured_policy", extra={"entity": exc.entity_type, "operation": exc.operation})
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="authz_policy_unconfigured",
            message=str(exc),
        )
    raise exc


HANDLED_ERRORS = (AuthorizationDenied, NotFound, ForbiddenFieldError, ValidationError, CascadeTargetMissing, UnconfiguredPolicy)


async def get_current_principal(request: Request, auth_user: AuthUser = Depends(get_auth_user)) -> AuthorizationContext:
    if not auth_user.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    # Runs on the request task so the principal reaches log records emitted by the handler.
    set_principal_id(auth_user.sub)
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return authorization_middleware.open_context(auth_user.sub, correlation_id=correlation_id)


def _collection(name: str) -> Collection:
    collection = COLLECTIONS.get(name)
    if collection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown collection '{name}'")
    return collection


@router.post("/deals/{deal_id}/proposals", response_model=DerivedProposalRead, status_code=status.HTTP_201_CREATED)
def derive_proposal(
    request: Request,
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: AuthorizationContext = Depends(get_current_principal),
) -> DerivedProposalRead | JSONResponse:
    try:
        proposal_id = proposal_derivation_service.derive_proposal(db, deal_id, actor_id=principal.principal_id)
    except HANDLED_ERRORS as exc:
        return handle_failure(request, exc, "sales_proposal_derive_failed")
    return DerivedProposalRead(proposal_id=proposal_id, deal_id=deal_id)


@router.get("/{collection_name}")
def list_records(
    request: Request,
    collection_name: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: AuthorizationContext = Depends(get_current_principal),
) -> Any:
    collection = _collection(collection_name)
    filters = {key: value for key, value in request.query_params.items() if key not in {"limit", "offset"}}
    try:
        rows = sales_record_service.list_records(db, principal, collection, filters, limit, offset)
    except HANDLED_ERRORS as exc:
        return handle_failure(request, exc, f"sales_{collection.entity_type}_list_failed")
    return jsonable_encoder(rows)


@router.get("/{collection_name}/{record_id}")
def get_record(
    request: Request,
    collection_name: str,
    record_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: AuthorizationContext = Depends(get_current_principal),
) -> Any:
    collection = _collection(collection_name)
    try:
        row = sales_record_service.get_record(db, principal, collection, record_id)
    except HANDLED_ERRORS as exc:
        return handle_failure(request, exc, f"sales_{collection.entity_type}_get_failed")
    return jsonable_encoder(row)


@router.post("/{collection_name}", status_code=status.HTTP_201_CREATED)
def create_record(
    request: Request,
    collection_name: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    principal: AuthorizationContext = Depends(get_current_principal),
) -> Any:
    collection = _collection(collection_name)
    try:
        row = sales_record_service.create_record(db, principal, collection, payload)
    except HANDLED_ERRORS as exc:
        return handle_failure(request, exc, f"sales_{collection.entity_type}_create_failed")
    return jsonable_encoder(row)


@router.patch("/{collection_name}/{record_id}")
def update_record(
    request: Request,
    collection_name: str,
    record_id: uuid.UUID,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    principal: AuthorizationContext = Depends(get_current_principal),
) -> Any:
    collection = _collection(collection_name)
    try:
        row = sales_record_service.update_record(db, principal, collection, record_id, payload)
    except HANDLED_ERRORS as exc:
        return handle_failure(request, exc, f"sales_{collection.entity_type}_update_failed")
    return jsonable_encoder(row)


@router.delete("/{collection_name}/{record_id}", status_code=status.HTTP_200_OK)
def delete_record(
    request: Request,
    collection_name: str,
    record_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: AuthorizationContext = Depends(get_current_principal),
) -> Any:
    collection = _collection(collection_name)
    try:
        sales_record_service.delete_record(db, principal, collection, record_id)
    except HANDLED_ERRORS as exc:
        return handle_failure(request, exc, f"sales_{collection.entity_type}_delete_failed")
    return {"status": "deleted"}


@authz_router.get("/policies", response_model=list[PolicyRuleRead])
def list_policies(
    request: Request,
    db: Session = Depends(get_db),
    principal: AuthorizationContext = Depends(get_current_principal),
) -> list[PolicyRuleRead] | JSONResponse:
    try:
        role = authorization_middleware.resolve_role(db, principal)
    except (PrincipalNotFound, UnknownRole) as exc:
        logger.warning("authz.policy_audit_denied", extra={"reason": type(exc).__name__})
        role = None
    if role is not Role.ADMIN:
        return error_response(
            request,
            status_code=status.HTTP_403_FORBIDDEN,
            code="authz_policy_audit_forbidden",
            message="policy audit requires the Admin role",
        )
    return [PolicyRuleRead.model_validate(row) for row in policy_registry.describe_policies()]
