from fastapi import FastAPI

from card_checkout import models  # noqa: F401  registers tables
from card_checkout.database import Base, engine
from card_checkout.log import configure_logging
from card_checkout.routes import router

configure_logging()

app = FastAPI(title="Card Checkout Gateway")

app.include_router(router)

Base.metadata.create_all(bind=engine)
