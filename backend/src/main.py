from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from backend.src.core.config import settings
from backend.src.core.logging_utils import configure_logging

# --- API Route Imports ---
from backend.src.api.routes import auth, site_kit

configure_logging()

# 1. App Initialize
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Site Kit Backend - Google AdSense, Analytics and Search Console reports for the admin dashboard"
)

# 2. CORS Setup
# The admin dashboard is served from a different origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3. Health Check Route
@app.get("/")
async def root():
    return {
        "message": "Site Kit endpoint is running",
        "status": "ok",
    }

# 4. API Router Includes
app.include_router(auth.router, prefix=settings.API_V1_STR, tags=["Authentication"])
app.include_router(site_kit.router, prefix=settings.API_V1_STR, tags=["Site Kit"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("backend.src.main:app", host="0.0.0.0", port=8000, reload=True)
