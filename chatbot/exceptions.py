"""
Application error taxonomy. Every error carries the HTTP status it maps to;
chatbot.main renders them as {"success": false, "message": ...}.
"""


class ChatbotError(Exception):
    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(ChatbotError):
    status_code = 401
    default_message = "No token, authorization denied"


class ForbiddenError(ChatbotError):
    status_code = 403
    default_message = "Access denied."


class NotFoundError(ChatbotError):
    status_code = 404
    default_message = "Not found"


class ValidationError(ChatbotError):
    status_code = 400
    default_message = "Invalid request"


class InternalError(ChatbotError):
    status_code = 500
