"""
api/routes/v1/admin.py -- Admin account management.

Routes (all admin only):
  GET    /api/v1/admin/users                              -- list admins
  POST   /api/v1/admin/users                              -- invite a new admin; 201
  GET    /api/v1/admin/users/{id}                         -- one admin
  PATCH  /api/v1/admin/users/{id}                         -- rename / change email
  DELETE /api/v1/admin/users/{id}                         -- remove (not yourself)
  POST   /api/v1/admin/users/{id}/resend-invitation       -- fresh 7-day link
  GET    /api/v1/admin/app-users                          -- list regular users

Invited admins have no password. The invitation link lands on the same
reset-password flow as self-service recovery.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import (
    AdminUserCreate,
    AdminUserEnvelope,
    AdminUserList,
    AdminUserPatch,
    AdminUserResponse,
    MessageResponse,
)
from auth.dependencies import get_flows, require_admin
from auth.flows import INVITATION_SENT_MESSAGE, CredentialFlows
from auth.models import Principal

# Router-level dependency: every route here runs the session gate then the
# role gate before its handler.
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/admin/users", response_model=AdminUserList)
def list_admin_users(flows: CredentialFlows = Depends(get_flows)) -> AdminUserList:
    return AdminUserList(users=[AdminUserResponse.from_user(u) for u in flows.list_users("admin")])


@router.get("/admin/app-users", response_model=AdminUserList)
def list_app_users(flows: CredentialFlows = Depends(get_flows)) -> AdminUserList:
    return AdminUserList(users=[AdminUserResponse.from_user(u) for u in flows.list_users("user")])


@router.post("/admin/users", response_model=AdminUserEnvelope, status_code=201)
def create_admin_user(body: AdminUserCreate, flows: CredentialFlows = Depends(get_flows)) -> AdminUserEnvelope:
    """Create a passwordless admin and email a 7-day set-password invitation."""
    user = flows.create_admin(body.name, body.email)
    return AdminUserEnvelope(message=INVITATION_SENT_MESSAGE, user=AdminUserResponse.from_user(user))


@router.get("/admin/users/{user_id}", response_model=AdminUserEnvelope)
def get_admin_user(user_id: str, flows: CredentialFlows = Depends(get_flows)) -> AdminUserEnvelope:
    return AdminUserEnvelope(user=AdminUserResponse.from_user(flows.get_admin(user_id)))


@router.patch("/admin/users/{user_id}", response_model=AdminUserEnvelope)
def update_admin_user(
    user_id: str,
    body: AdminUserPatch,
    flows: CredentialFlows = Depends(get_flows),
) -> AdminUserEnvelope:
    """Rename an admin or change their email. Email uniqueness is re-checked."""
    user = flows.update_admin(user_id, name=body.name, email=body.email)
    return AdminUserEnvelope(message="Admin user updated successfully.", user=AdminUserResponse.from_user(user))


@router.delete("/admin/users/{user_id}", response_model=MessageResponse)
def delete_admin_user(
    user_id: str,
    principal: Principal = Depends(require_admin),
    flows: CredentialFlows = Depends(get_flows),
) -> MessageResponse:
    flows.delete_admin(principal.id, user_id)
    return MessageResponse(message="Admin user deleted successfully.")


@router.post("/admin/users/{user_id}/resend-invitation", response_model=MessageResponse)
def resend_invitation(user_id: str, flows: CredentialFlows = Depends(get_flows)) -> MessageResponse:
    return MessageResponse(message=flows.resend_invitation(user_id))
