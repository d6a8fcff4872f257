from __future__ import annotations


class StoreError(Exception):
    """A storage failure tagged with the phase of the operation that failed."""

    def __init__(self, phase: str, cause: BaseException) -> None:
        super().__init__(f"{phase}: {cause}")
        self.phase = phase
        self.cause = cause


class RecordNotFound(LookupError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"record not found: {order_id}")
        self.order_id = order_id
