from http import HTTPStatus


class APIError(Exception):
    """
    Business rule failure that maps straight to an HTTP status.
    Anything that is not an APIError is treated as unexpected and reported as a 500.
    """
    status = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(APIError):
    status = HTTPStatus.BAD_REQUEST


class NotFoundError(APIError):
    status = HTTPStatus.NOT_FOUND


class ConflictError(APIError):
    status = HTTPStatus.CONFLICT
