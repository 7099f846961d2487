"""
Admissions Module

Handles course admissions from application to acceptance:
1. Applications with a per-institution cap and a subject/grade snapshot
2. Institution decisions (admit / reject / waitlist)
3. Per-course publication of decisions
4. Offer acceptance with automatic decline of every other open application
5. First-come waitlist promotion when an admitted seat is released

API Endpoints:
- /admissions/... - Student endpoints (apply, withdraw, offers, accept)
- /institution/admissions/... - Institution endpoints (decide, publish, waitlist)
- /eligibility/courses - Public eligible-course finder

Background Jobs (via APScheduler):
- dispatch_admission_events: Relays admission events to students by email
"""

from .eligibility_router import router as eligibility_router
from .institution_router import router as institution_router
from .jobs import register_admission_jobs
from .router import router

__all__ = ["router", "institution_router", "eligibility_router", "register_admission_jobs"]
