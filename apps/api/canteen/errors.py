from dataclasses import dataclass


@dataclass(eq=False)
class OrderServiceError(Exception):
    code: str
    message: str
    status_code: int = 400

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class NotFoundError(OrderServiceError):
    def __init__(self, resource: str = "Order", message: str | None = None) -> None:
        super().__init__(
            code="NOT_FOUND",
            message=message or f"{resource} not found",
            status_code=404,
        )


class InvalidTransitionError(OrderServiceError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            code="INVALID_TRANSITION",
            message=f"Invalid state transition: {current} -> {target}",
            status_code=409,
        )
        self.current = current
        self.target = target


class ConflictError(OrderServiceError):
    def __init__(self, message: str = "Order was modified concurrently") -> None:
        super().__init__(code="CONFLICT", message=message, status_code=409)


class RemoteUnavailableError(OrderServiceError):
    def __init__(self, message: str = "Order store unavailable") -> None:
        super().__init__(code="REMOTE_UNAVAILABLE", message=message, status_code=503)


class OrderValidationError(OrderServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(code="VALIDATION_ERROR", message=message, status_code=422)
