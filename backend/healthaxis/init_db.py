import logging

from .db import Base, engine
from . import models  # noqa: F401
from .logger import log_event


def init():
    Base.metadata.create_all(bind=engine)
    log_event(logging.INFO, "Tables created", {"tables": sorted(Base.metadata.tables)})


if __name__ == "__main__":
    init()
    print("✅ Tables created successfully")
