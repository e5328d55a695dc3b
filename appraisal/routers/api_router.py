from fastapi import APIRouter
from appraisal.routers import (
    auth, companies, navigation, notifications, org, questionnaires, appraisal_groups,
    appraisals, evaluations, reminders, development_goals
)

# Centralized API router hub
# Every business router is mounted here; main.py adds the API prefix.
api_router = APIRouter()

api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(companies.router, tags=["Companies"])
api_router.include_router(navigation.router, tags=["Navigation"])
api_router.include_router(notifications.router, tags=["Notifications"])
api_router.include_router(org.router, tags=["Organization"])
api_router.include_router(questionnaires.router, tags=["Questionnaires"])
api_router.include_router(appraisal_groups.router, tags=["Appraisal Groups"])
api_router.include_router(appraisals.router, tags=["Appraisals"])
api_router.include_router(evaluations.router, tags=["Evaluations"])
api_router.include_router(reminders.router, tags=["Reminders"])
api_router.include_router(development_goals.router, tags=["Development Goals"])
