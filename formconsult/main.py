import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from formconsult.core import config
from formconsult.database import Base, engine, ensure_schema
from formconsult.models import appointment, company, notification, user  # noqa: F401
from formconsult.routes import appointment_routes, consultant_routes, notification_routes

if config.APP_ENV.lower() != 'production':
    logging.basicConfig(level=config.LOG_LEVEL)
else:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
    )

app = FastAPI(title='FormConsult API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
    allow_headers=['Authorization', 'Content-Type'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'FormConsult API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(consultant_routes.router, prefix='/consultants')
app.include_router(notification_routes.router, prefix='/notifications')
