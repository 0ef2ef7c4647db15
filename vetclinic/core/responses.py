from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def envelope(is_success: bool, message: str, data: Any = None) -> dict:
    return {'is_success': is_success, 'message': message, 'data': data}


def success(message: str = 'Operation is successfully', data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope(True, message, data)))


def error(message: str = 'Something went wrong!', status_code: int = 500, data: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope(False, message, data)))
