# database.py

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from reelforge.config import DATABASE_URL

# sqlite connections are shared between the API thread and worker threads
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Create the engine to connect to the database
engine = create_engine(DATABASE_URL, connect_args=connect_args)

# Create a session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for our database models
Base = declarative_base()


def init_database(bind=engine):
    """Creates the jobs table if it doesn't exist yet."""
    from reelforge import models  # noqa: F401  registers the jobs table

    Base.metadata.create_all(bind=bind)
    logging.info("✅ Database tables are ready")
