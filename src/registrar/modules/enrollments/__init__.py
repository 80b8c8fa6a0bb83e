"""
Enrollments Module

Handles the enrollment lifecycle:
1. Submission with payment receipt and fee calculation
2. Registrar review (pending, approved, rejected)
3. Migration of approved requests into the enrolled-students ledger,
   with duplicate prevention and exactly-once semantics per request
4. Duplicate cleanup and ledger administration

API Endpoints:
- POST /enrollments - Submit a request
- GET /enrollments/student/{student_id} - Request history
- GET /enrollments/student/{student_id}/schedule - Enriched schedule
- /admin/enrollments/... - Review, bulk actions, migration, cleanup
- /admin/enrolled-students/... - Ledger search, statistics, status

Background Jobs (via APScheduler):
- enrollments_migrate_approved: Interval or manual
- enrollments_cleanup_duplicates: Manual
"""

from .jobs import register_enrollment_jobs
from .router import router

__all__ = ["router", "register_enrollment_jobs"]
