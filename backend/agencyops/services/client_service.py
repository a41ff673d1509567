"""
Client Service - Per-agency client directory
"""
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from agencyops.models import (
    Client, ClientStatus, Consultation, Proposal, Contract, Invoice, Quotation
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, require_role, MANAGERS, OWNER_ONLY

CLIENT_FIELDS = ("business_name", "email", "phone", "contact_name", "notes")


class ClientService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    def get_by_id(self, client_id: int, agency_id: int) -> Optional[Client]:
        return self.db.query(Client).filter(
            Client.id == client_id,
            Client.agency_id == agency_id
        ).first()

    def get_by_email(self, email: str, agency_id: int) -> Optional[Client]:
        return self.db.query(Client).filter(
            Client.agency_id == agency_id,
            Client.email == email.strip().lower()
        ).first()

    def get_clients(
        self,
        agency_id: int,
        search: Optional[str] = None,
        status: Optional[str] = ClientStatus.ACTIVE,
        limit: int = 50,
        offset: int = 0
    ) -> List[Client]:
        query = self.db.query(Client).filter(Client.agency_id == agency_id)
        if status and status != "all":
            query = query.filter(Client.status == status)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                Client.business_name.ilike(term),
                Client.email.ilike(term),
                Client.contact_name.ilike(term)
            ))
        return query.order_by(Client.business_name).offset(offset).limit(limit).all()

    def search_clients(self, agency_id: int, query_text: str, limit: int = 10) -> List[Client]:
        return self.get_clients(agency_id, search=query_text, status=None, limit=limit)

    def get_client_count(self, agency_id: int) -> Dict[str, int]:
        rows = self.db.query(Client.status, func.count(Client.id)).filter(
            Client.agency_id == agency_id
        ).group_by(Client.status).all()
        counts = {status: count for status, count in rows}
        return {
            "total": sum(counts.values()),
            "active": counts.get(ClientStatus.ACTIVE, 0),
            "archived": counts.get(ClientStatus.ARCHIVED, 0),
        }

    def _email_taken(self, agency_id: int, email: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Client.id).filter(
            Client.agency_id == agency_id,
            Client.email == email
        )
        if exclude_id:
            query = query.filter(Client.id != exclude_id)
        return query.first() is not None

    def create_client(self, ctx: AgencyContext, data: dict) -> Client:
        email = data["email"].strip().lower()
        if self._email_taken(ctx.agency_id, email):
            raise ValueError("A client with this email already exists")

        client = Client(
            agency_id=ctx.agency_id,
            business_name=data["business_name"],
            email=email,
            phone=data.get("phone"),
            contact_name=data.get("contact_name"),
            notes=data.get("notes"),
        )
        self.db.add(client)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CLIENT_CREATED, "client", client.id,
                              new_values={"business_name": client.business_name, "email": email})
        return client

    def get_or_create_client(
        self,
        agency_id: int,
        business_name: str,
        email: str,
        contact_name: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Tuple[Client, bool]:
        """Return ``(client, created)`` matching the lower-cased email."""
        existing = self.get_by_email(email, agency_id)
        if existing:
            return existing, False

        client = Client(
            agency_id=agency_id,
            business_name=business_name,
            email=email.strip().lower(),
            contact_name=contact_name or None,
            phone=phone or None,
        )
        self.db.add(client)
        self.db.flush()
        return client, True

    def update_client(self, ctx: AgencyContext, client_id: int, data: dict) -> Optional[Client]:
        client = self.get_by_id(client_id, ctx.agency_id)
        if not client:
            return None

        if data.get("email"):
            email = data["email"].strip().lower()
            if email != client.email and self._email_taken(ctx.agency_id, email, client.id):
                raise ValueError("A client with this email already exists")
            data = {**data, "email": email}

        old_values = {}
        for key in CLIENT_FIELDS:
            if key in data and data[key] is not None:
                old_values[key] = getattr(client, key)
                setattr(client, key, data[key])
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CLIENT_UPDATED, "client", client.id,
                              old_values=old_values, new_values={k: data[k] for k in old_values})
        return client

    def delete_client(self, ctx: AgencyContext, client_id: int) -> bool:
        require_role(ctx, OWNER_ONLY, "Only the owner can delete clients")
        client = self.get_by_id(client_id, ctx.agency_id)
        if not client:
            return False
        snapshot = {"business_name": client.business_name, "email": client.email}
        self.db.delete(client)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.CLIENT_DELETED, "client", client_id, old_values=snapshot)
        return True

    def _set_status(self, ctx: AgencyContext, client_id: int, status: str, action: str) -> Optional[Client]:
        require_role(ctx, MANAGERS, "Only owners and admins can archive clients")
        client = self.get_by_id(client_id, ctx.agency_id)
        if not client:
            return None
        client.status = status
        self.db.flush()
        self.activity.log_for(ctx, action, "client", client.id, new_values={"status": status})
        return client

    def archive_client(self, ctx: AgencyContext, client_id: int) -> Optional[Client]:
        return self._set_status(ctx, client_id, ClientStatus.ARCHIVED, ActivityAction.CLIENT_ARCHIVED)

    def restore_client(self, ctx: AgencyContext, client_id: int) -> Optional[Client]:
        return self._set_status(ctx, client_id, ClientStatus.ACTIVE, ActivityAction.CLIENT_RESTORED)

    def get_client_documents(self, client_id: int, agency_id: int) -> Optional[Dict[str, Any]]:
        client = self.get_by_id(client_id, agency_id)
        if not client:
            return None

        def linked(model, title, number=None):
            rows = self.db.query(model).filter(
                model.client_id == client_id,
                model.agency_id == agency_id
            ).order_by(model.created_at.desc()).all()
            return [
                {
                    "id": row.id,
                    "title": title(row),
                    "status": row.status,
                    "number": getattr(row, number) if number else None,
                    "slug": getattr(row, "slug", None),
                    "created_at": row.created_at,
                    "updated_at": row.updated_at,
                }
                for row in rows
            ]

        documents = {
            "consultations": linked(Consultation, lambda r: r.business_name or "Consultation"),
            "proposals": linked(Proposal, lambda r: r.title, "proposal_number"),
            "contracts": linked(Contract, lambda r: "Service Agreement", "contract_number"),
            "invoices": linked(Invoice, lambda r: "Invoice", "invoice_number"),
            "quotations": linked(Quotation, lambda r: r.quotation_name or "Quotation", "quotation_number"),
        }
        return {
            "client": client,
            **documents,
            "counts": {key: len(value) for key, value in documents.items()},
        }
