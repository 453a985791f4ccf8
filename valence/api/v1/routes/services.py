from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from valence.db.session import get_db
from valence.api.deps import require_roles
from valence.models.user import User
from valence.schemas.catalogue import ServiceIn, ServiceList, ServiceOut, ServiceUpdate
from valence.services.catalogue_service import create_service, get_service, list_services, update_service

router = APIRouter(tags=["services"])


@router.get("/services", response_model=ServiceList)
def browse_services(category: str | None = None, providerId: str | None = None, db: Session = Depends(get_db)):
    """Public catalogue of active listings, newest first."""
    return ServiceList(items=[ServiceOut.from_service(s) for s in list_services(db, category, providerId)])


@router.get("/services/{service_id}", response_model=ServiceOut)
def service_detail(service_id: str, db: Session = Depends(get_db)):
    return ServiceOut.from_service(get_service(db, service_id))


@router.post("/services", response_model=ServiceOut, status_code=201)
def new_service(body: ServiceIn, db: Session = Depends(get_db), me: User = Depends(require_roles("provider"))):
    return ServiceOut.from_service(create_service(db, me, body))


@router.patch("/services/{service_id}", response_model=ServiceOut)
def edit_service(service_id: str, body: ServiceUpdate, db: Session = Depends(get_db),
                 me: User = Depends(require_roles("provider"))):
    return ServiceOut.from_service(update_service(db, me, service_id, body))
