import contextvars

_policy_id: contextvars.ContextVar[str] = contextvars.ContextVar("policy_id", default="-")
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


def set_policy_id(policy_id: str) -> None:
    _policy_id.set(policy_id)


def get_policy_id() -> str:
    return _policy_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def clear_context() -> None:
    _policy_id.set("-")
    _request_id.set("-")
