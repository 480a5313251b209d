from fastapi import APIRouter
from edutrack.api.v1.endpoints import (
    auth, health, batches, courses, assignments, attendance, reports, students, trainer, faculty,
)
from edutrack.api.v1.endpoints.admin import admin_router

api_router = APIRouter()

api_router.include_router(health.router)


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for load balancer"""
    return {"status": "healthy", "service": "edutrack-backend"}


api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(batches.router, prefix="/batches", tags=["Batches"])
api_router.include_router(courses.router, prefix="/courses", tags=["Courses"])
api_router.include_router(assignments.router, prefix="/assignments", tags=["Assignments"])
api_router.include_router(attendance.router, prefix="/attendance", tags=["Attendance"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])
api_router.include_router(students.router, prefix="/students", tags=["Students"])
api_router.include_router(trainer.router, prefix="/trainer", tags=["Trainer"])
api_router.include_router(faculty.router, prefix="/faculty", tags=["Faculty"])
api_router.include_router(admin_router)
