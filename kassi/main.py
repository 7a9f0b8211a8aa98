from fastapi import FastAPI
from kassi.db import Base, engine
import kassi.models  # noqa: F401 ensure models are imported so tables are known
from kassi.api.routes import router as api_router

# create FastAPI instance
app = FastAPI(title="Kassi listings")
app.include_router(api_router)


@app.on_event("startup")
def on_startup_create_tables():
    # Ensure database tables are created on startup; production schemas come from migrations
    Base.metadata.create_all(bind=engine)
