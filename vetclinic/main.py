import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from vetclinic.core import config, responses
from vetclinic.core.exceptions import AppointmentError
from vetclinic.database import init_db
from vetclinic.routes import appointment_routes, availability_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

logger = logging.getLogger(__name__)

app = FastAPI(title='Veterinary Clinic Scheduling API', debug=config.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


def _field_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get('loc', ()) if part not in ('body', 'query', 'path')]
        field = '.'.join(location) or 'request'
        errors.setdefault(field, []).append(error.get('msg', 'Invalid value.'))
    return errors


@app.exception_handler(AppointmentError)
async def handle_appointment_error(_request: Request, exc: AppointmentError):
    data = {'errors': exc.errors} if exc.errors else None
    return responses.error(exc.message, exc.status_code, data)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(_request: Request, exc: RequestValidationError):
    return responses.error(
        'The given data was invalid.',
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {'errors': _field_errors(exc)},
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(_request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else 'Request failed.'
    return responses.error(message, exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError):
    logger.exception('Database error while handling %s %s', request.method, request.url.path, exc_info=exc)
    return responses.error('Something went wrong!', status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.get('/')
def root():
    return responses.success('Veterinary Clinic API Running')


# Availability routes first so /appointments/calendar is not read as an appointment id.
app.include_router(availability_routes.router)
app.include_router(appointment_routes.router)
