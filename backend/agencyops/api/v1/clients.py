"""
Client API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.security import get_agency_context
from agencyops.schemas import ClientCreate, ClientUpdate, ClientResponse, MessageResponse
from agencyops.services.client_service import ClientService
from agencyops.services.permission_service import AgencyContext

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("", response_model=List[ClientResponse])
async def list_clients(
    search: Optional[str] = None,
    status: Optional[str] = "active",
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """List clients; ``status=all`` includes archived"""
    return ClientService(db).get_clients(ctx.agency_id, search, status, min(limit, 200), offset)


@router.get("/search", response_model=List[ClientResponse])
async def search_clients(
    q: str,
    limit: int = 10,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return ClientService(db).search_clients(ctx.agency_id, q, min(limit, 50))


@router.get("/count")
async def get_client_count(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return ClientService(db).get_client_count(ctx.agency_id)


@router.get("/by-email", response_model=ClientResponse)
async def get_client_by_email(
    email: str,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    client = ClientService(db).get_by_email(email, ctx.agency_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        client = ClientService(db).create_client(ctx, client_data.model_dump())
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return client


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    client = ClientService(db).get_by_id(client_id, ctx.agency_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get("/{client_id}/documents")
async def get_client_documents(
    client_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Consultations, proposals, contracts, invoices and quotations for the client"""
    documents = ClientService(db).get_client_documents(client_id, ctx.agency_id)
    if documents is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return documents


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        client = ClientService(db).update_client(ctx, client_id, client_data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return client


@router.post("/{client_id}/archive", response_model=ClientResponse)
async def archive_client(
    client_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    client = ClientService(db).archive_client(ctx, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return client


@router.post("/{client_id}/restore", response_model=ClientResponse)
async def restore_client(
    client_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    client = ClientService(db).restore_client(ctx, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return client


@router.delete("/{client_id}", response_model=MessageResponse)
async def delete_client(
    client_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not ClientService(db).delete_client(ctx, client_id):
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return {"message": "Client deleted"}
