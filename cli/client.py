from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def start_simulation(self, interval_ms: Optional[int] = None) -> Dict[str, Any]:
        params = {"interval_ms": interval_ms} if interval_ms is not None else None
        return self._request("POST", "/simulation/start", params=params)

    def stop_simulation(self) -> Dict[str, Any]:
        return self._request("POST", "/simulation/stop")

    def simulation_status(self) -> Dict[str, Any]:
        return self._request("GET", "/simulation/status")

    def update_config(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", "/simulation/config", json=partial)

    def start_session(self, name: str, notes: Optional[str] = None) -> str:
        payload = self._request("POST", "/sessions", json={"name": name, "notes": notes})
        session_id = payload.get("session_id")
        if not isinstance(session_id, str):
            raise typer.BadParameter("Unexpected response payload when starting a session.")
        return session_id

    def end_session(self) -> Dict[str, Any]:
        return self._request("POST", "/sessions/current/end")

    def list_sessions(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/sessions")

    def session_stats(self, session_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/sessions/{session_id}/stats")

    def export_session(self, session_id: str, export_format: str) -> tuple[str, str]:
        """Return ``(filename, body)`` for a session export."""
        response = self._send(
            "GET", f"/sessions/{session_id}/export", params={"format": export_format}
        )
        disposition = response.headers.get("content-disposition", "")
        filename = disposition.partition("filename=")[2].strip('"') or f"{session_id}.{export_format}"
        return filename, response.text

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        return self._send(method, path, **kwargs).json()

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True
            )
            raise typer.Exit(code=1) from exc
        return response

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
