from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the rollup service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def send_sample(self, device_serial: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not fields:
            raise typer.BadParameter("At least one reading is required.")
        return self._request("POST", f"/devices/{device_serial}/samples", json=fields)

    def get_hourly_values(
        self, device_serial: str, page: int = 1, limit: int = 24
    ) -> List[Dict[str, Any]]:
        return self._request(
            "GET",
            f"/devices/{device_serial}/hourly-values",
            params={"page": page, "limit": limit},
        )

    def get_statistics(self, device_serial: str, period: str) -> List[Dict[str, Any]]:
        return self._request(
            "GET", f"/devices/{device_serial}/statistics", params={"period": period}
        )

    def get_commands(self, limit: int = 50) -> List[Dict[str, Any]]:
        return self._request("GET", "/commands", params={"limit": limit})

    def _request(
        self,
        method: str,
        url: str,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = self._client.request(method, url, json=json, params=params)
            if response.status_code == 404:
                raise typer.BadParameter(self._detail(response) or f"{url} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.RequestError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _detail(response: httpx.Response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip() or None
        if isinstance(data, dict):
            detail = data.get("detail")
            return str(detail) if detail else None
        return None

    @classmethod
    def _handle_http_error(cls, exc: httpx.HTTPStatusError) -> None:
        detail = cls._detail(exc.response)
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
