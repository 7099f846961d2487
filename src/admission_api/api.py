from fastapi import APIRouter

from admission_api.modules.admissions import eligibility_router, institution_router
from admission_api.modules.admissions import router as admissions_router

api_router = APIRouter()

api_router.include_router(admissions_router, prefix="/admissions", tags=["Admissions"])

api_router.include_router(
    institution_router,
    prefix="/institution/admissions",
    tags=["Institution - Admissions"],
)

api_router.include_router(eligibility_router, prefix="/eligibility", tags=["Eligibility"])
