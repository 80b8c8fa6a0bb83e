"""
Curriculum Module

Reference data lookups and fee calculation:
- Program and year-level normalization (canonical values parsed at the boundary)
- Curriculum resolution tolerant of year-level spellings
- Subject enrichment that never overwrites data with placeholders
- Fee calculation (regular/irregular schedules)

API Endpoints:
- GET /curriculum/programs
- GET /curriculum
- GET /curriculum/fees
"""

from .router import router

__all__ = ["router"]
