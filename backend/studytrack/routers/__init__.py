"""HTTP controllers, one `APIRouter` per resource group under `/api`.

Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Domain errors raised by services
are translated to responses by the handlers registered in `main`.
"""

from . import auth, contests, goals, notifications, partners, progress, questions, study_sessions, subjects

ALL_ROUTERS = (
    auth.router,
    contests.router,
    subjects.router,
    goals.router,
    study_sessions.router,
    questions.router,
    partners.router,
    notifications.router,
    progress.router,
)
