import logging

from fastapi import FastAPI

from servicebook.maintenance.router import router as maintenance_router

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Servicebook")
app.include_router(maintenance_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
