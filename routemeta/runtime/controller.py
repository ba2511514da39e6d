"""Base class exposing the controller-capability protocol."""

from __future__ import annotations


class Controller:
    def __init__(self):
        self._status: int | None = None
        self._headers: dict[str, str | list[str] | None] = {}

    def set_status(self, status_code: int) -> None:
        self._status = status_code

    def get_status(self) -> int | None:
        return self._status

    def set_header(self, name: str, value: str | list[str] | None = None) -> None:
        self._headers[name] = value

    def get_headers(self) -> dict[str, str | list[str] | None]:
        return self._headers
