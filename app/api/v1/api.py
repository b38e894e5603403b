from fastapi import APIRouter

from app.api.v1.endpoints import custom_domains, domain_monitoring

api_router = APIRouter()
api_router.include_router(domain_monitoring.router, prefix="/businesses", tags=["domain-monitoring"])
api_router.include_router(custom_domains.router, prefix="/businesses", tags=["custom-domains"])
