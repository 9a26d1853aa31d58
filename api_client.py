# api_client.py
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

DEFAULT_API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000").rstrip("/")
API_TOKEN = os.getenv("API_TOKEN", "").strip()


class ApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


def _headers() -> Dict[str, str]:
    h: Dict[str, str] = {}
    if API_TOKEN:
        h["Authorization"] = f"Bearer {API_TOKEN}"
    return h


def _base(api_base: Optional[str]) -> str:
    b = (api_base or DEFAULT_API_BASE).rstrip("/")
    if not b:
        b = "http://127.0.0.1:8000"
    return b


def _request(method: str, url: str, *, timeout: float = 30, raw: bool = False, **kwargs) -> Any:
    """
    - 2xx/3xx: JSON body as JSON, otherwise text (or bytes with raw=True)
    - 4xx/5xx: ApiError carrying the status code and the server's detail
    """
    try:
        r = requests.request(method, url, headers=_headers(), timeout=timeout, **kwargs)
    except requests.RequestException as e:
        raise ApiError(f"API call failed: {method} {url}\n{e}") from e

    ctype = (r.headers.get("content-type") or "").lower()
    if r.status_code < 400:
        if raw:
            return r.content
        return r.json() if "application/json" in ctype else r.text

    detail: Any = r.text[:1200]
    if "application/json" in ctype:
        try:
            j = r.json()
            detail = j.get("detail", j) if isinstance(j, dict) else j
        except ValueError:
            pass
    raise ApiError(f"{r.status_code} {method} {url}: {detail}", status_code=r.status_code, detail=detail)


def _as_list(res: Any) -> List[Dict[str, Any]]:
    if isinstance(res, list):
        return [x for x in res if isinstance(x, dict)]
    return []


# -----------------------------
# service
# -----------------------------
def health(api_base: Optional[str] = None) -> Dict[str, Any]:
    return _request("GET", f"{_base(api_base)}/health", timeout=10)


# -----------------------------
# roster
# -----------------------------
def load_roster(api_base: Optional[str] = None, timeout: float = 300) -> Dict[str, Any]:
    # embedding every student photo can take a while
    return _request("POST", f"{_base(api_base)}/roster/load", timeout=timeout)


def list_roster(api_base: Optional[str] = None) -> List[Dict[str, Any]]:
    return _as_list(_request("GET", f"{_base(api_base)}/roster"))


# -----------------------------
# session
# -----------------------------
def session_status(api_base: Optional[str] = None) -> Dict[str, Any]:
    return _request("GET", f"{_base(api_base)}/session")


def start_session(threshold: Optional[float] = None, api_base: Optional[str] = None) -> Dict[str, Any]:
    payload = {"threshold": threshold} if threshold is not None else None
    return _request("POST", f"{_base(api_base)}/session/start", json=payload)


def stop_session(api_base: Optional[str] = None) -> Dict[str, Any]:
    return _request("POST", f"{_base(api_base)}/session/stop")


def set_threshold(threshold: float, api_base: Optional[str] = None) -> Dict[str, Any]:
    return _request("PATCH", f"{_base(api_base)}/session/threshold", json={"threshold": threshold})


# -----------------------------
# attendance
# -----------------------------
def list_attendance(api_base: Optional[str] = None) -> List[Dict[str, Any]]:
    return _as_list(_request("GET", f"{_base(api_base)}/attendance"))


def export_attendance_csv(api_base: Optional[str] = None) -> bytes:
    return _request("GET", f"{_base(api_base)}/attendance/export", raw=True)


def recent_events(limit: int = 50, kind: Optional[str] = None, api_base: Optional[str] = None) -> List[Dict[str, Any]]:
    params: Dict[str, Any] = {"limit": limit}
    if kind:
        params["kind"] = kind
    return _as_list(_request("GET", f"{_base(api_base)}/events", params=params))
