from fastapi import APIRouter

from registrar.modules.curriculum import router as curriculum_router
from registrar.modules.enrollments import router as enrollments_router
from registrar.modules.enrollments.admin_router import enrolled_router as admin_enrolled_router
from registrar.modules.enrollments.admin_router import router as admin_enrollments_router
from registrar.modules.notifications import router as notifications_router

api_router = APIRouter()

api_router.include_router(curriculum_router, prefix="/curriculum", tags=["Curriculum"])

api_router.include_router(enrollments_router, prefix="/enrollments", tags=["Enrollments"])

api_router.include_router(
    admin_enrollments_router,
    prefix="/admin/enrollments",
    tags=["Admin - Enrollments"],
)

api_router.include_router(
    admin_enrolled_router,
    prefix="/admin/enrolled-students",
    tags=["Admin - Enrolled Students"],
)

api_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notifications"]
)
