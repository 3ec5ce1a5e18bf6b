from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hostelsync.src import schemas
from hostelsync.src.constants import API_TITLE, API_VERSION
from hostelsync.src.urls import URL_ADMIN, URL_TRANSPORT
from hostelsync.api.controller import app_admin, app_transport


app = FastAPI(title=API_TITLE, version=API_VERSION)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# The admin mount is more specific and must be matched first
app.mount(URL_ADMIN, app_admin, "Transport Admin API")
app.mount(URL_TRANSPORT, app_transport, "Transport API")


# Health check endpoint
@app.get("/health", tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
