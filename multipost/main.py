from fastapi import FastAPI
from multipost.config import settings
from multipost.deps import init_db
from multipost.log import configure_logging
from multipost.middleware import RequestIdMiddleware
from multipost.services.scheduler import SchedulerSupervisor

# Routers
from multipost.routers import posts, scheduler_api

configure_logging()

app = FastAPI(title="Multipost API", version="0.1.0")
app.add_middleware(RequestIdMiddleware)
app.state.supervisor = SchedulerSupervisor()

@app.on_event("startup")
def _startup():
    init_db()
    if settings.scheduler_autostart:
        app.state.supervisor.start()

@app.on_event("shutdown")
def _shutdown():
    app.state.supervisor.stop()

@app.get("/")
def root():
    return {"message": "Multipost API is running!"}

# Mount routes
app.include_router(posts.router)          # /orgs/{org_id}/posts/*
app.include_router(scheduler_api.router)  # /scheduler/*
