"""
Fund back-office API: capital call administration
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.config import settings
from app.api.endpoints import allocations, capital_calls, funds
from app.exceptions import CapitalCallError
import uvicorn
import logging

# Set up logging
logger = logging.getLogger("app")
logger.setLevel(settings.LOG_LEVEL)
ch = logging.StreamHandler()
ch.setLevel(settings.LOG_LEVEL)
formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
ch.setFormatter(formatter)
logger.addHandler(ch)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Capital call administration API",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CapitalCallError)
async def capital_call_error_handler(request: Request, exc: CapitalCallError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(funds.router, prefix="/api/funds", tags=["funds"])
app.include_router(allocations.router, prefix="/api/allocations", tags=["allocations"])
app.include_router(capital_calls.router, prefix="/api/capital-calls", tags=["capital-calls"])


@app.get("/")
async def root():
    return {
        "message": "Fund Back-Office API",
        "version": settings.VERSION,
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
