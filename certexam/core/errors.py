"""
Domain error taxonomy.

Services raise these; the application maps them to an HTTP status and the
``{"success": false, "message": ...}`` envelope in one place.
"""

class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class BadRequest(AppError):
    status_code = 400

class Unauthorized(AppError):
    status_code = 401

class Forbidden(AppError):
    status_code = 403

class NotFound(AppError):
    status_code = 404

class Conflict(AppError):
    status_code = 409

class Gone(AppError):
    status_code = 410

class AlreadyMaxLevel(BadRequest):
    def __init__(self, message: str = "You have already completed the highest certification level."):
        super().__init__(message)

class InsufficientQuestions(AppError):
    status_code = 409

    def __init__(self, level: str, available: int, required: int):
        super().__init__(
            f"Not enough active questions for level {level}: {available} available, {required} required"
        )
        self.level = level
        self.available = available
        self.required = required
