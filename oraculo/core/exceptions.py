"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


class TokenExpiredError(AppException):
    """Token has expired."""

    def __init__(self) -> None:
        super().__init__(
            message="Token has expired",
            code="TOKEN_EXPIRED",
            status_code=401,
        )


class InvalidTokenError(AppException):
    """Token is invalid."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid token",
            code="INVALID_TOKEN",
            status_code=401,
        )


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


# --- Bad Request (400) ---


class InvalidInputError(AppException):
    """Request data failed a domain check."""

    def __init__(self, message: str = "Dados inválidos") -> None:
        super().__init__(message=message, code="INVALID_INPUT", status_code=400)


class NoActiveSessionError(AppException):
    """No chat session is selected."""

    def __init__(self) -> None:
        super().__init__(
            message="Nenhuma conversa selecionada",
            code="NO_ACTIVE_SESSION",
            status_code=400,
        )


# --- Not Found (404) ---


class SessionNotFoundError(AppException):
    """Chat session not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Conversa não encontrada",
            code="SESSION_NOT_FOUND",
            status_code=404,
        )


# --- Conflict (409) ---


class MessageInFlightError(AppException):
    """A previous message is still waiting for its reply."""

    def __init__(self) -> None:
        super().__init__(
            message="Aguarde a resposta da mensagem anterior",
            code="MESSAGE_IN_FLIGHT",
            status_code=409,
        )


class MessageLimitReachedError(AppException):
    """The session reached its human message limit."""

    def __init__(self) -> None:
        super().__init__(
            message=(
                "Limite de mensagens atingido para esta conversa. "
                "Crie uma nova conversa para continuar."
            ),
            code="MESSAGE_LIMIT_REACHED",
            status_code=409,
        )


class SessionBusyError(AppException):
    """Another session create or change is in progress."""

    def __init__(self) -> None:
        super().__init__(
            message="Outra operação de sessão está em andamento",
            code="SESSION_BUSY",
            status_code=409,
        )


# --- Upstream failures (502 / 503) ---


class GenerationError(AppException):
    """The generation webhook rejected or failed the request."""

    def __init__(self, message: str = "Falha ao enviar mensagem") -> None:
        super().__init__(message=message, code="GENERATION_FAILED", status_code=502)


class PersistenceError(AppException):
    """The durable store failed a read or write."""

    def __init__(self, message: str = "Falha ao acessar o banco de dados") -> None:
        super().__init__(message=message, code="PERSISTENCE_ERROR", status_code=503)


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": exc.code,
                "message": exc.message,
            },
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures in the AppException shape."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": f"{field}: {message}" if field else message,
            },
        },
    )
