"""
HTTP client for the remote authority.

``push`` and ``pull`` never raise: a failed push is reported in its
SyncResult and a failed pull returns None, so callers keep working on
the local snapshot. The per-entity calls raise RemoteSyncError and are
aggregated by ``push_entities``. One attempt per call; periodic
re-invocation is the caller's job.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from attendsync.core.config import settings
from attendsync.core.exceptions import RemoteSyncError
from attendsync.schemas.entities import AttendanceRecord, Employee
from attendsync.schemas.sync import (
    BatchResult,
    EntityOutcome,
    RawSnapshot,
    SyncCounts,
    SyncResult,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


class SyncTransport(Protocol):
    async def push(
        self, employees: Sequence[Employee], records: Sequence[AttendanceRecord]
    ) -> SyncResult: ...

    async def pull(self) -> RawSnapshot | None: ...

    async def delete_employee(self, employee_id: int | str) -> dict: ...

    async def delete_attendance_record(self, record_id: int | str) -> dict: ...

    async def push_entities(
        self, employees: Sequence[Employee], records: Sequence[AttendanceRecord]
    ) -> BatchResult: ...


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)


def _json_body(resp: httpx.Response, what: str) -> dict:
    """Decoded object body of a 2xx response; an empty body is an empty dict."""
    if not resp.content.strip():
        return {}
    try:
        body = resp.json()
    except ValueError as exc:
        raise RemoteSyncError(f"{what} returned a non-JSON body", status_code=resp.status_code) from exc
    if not isinstance(body, dict):
        raise RemoteSyncError(
            f"{what} returned {type(body).__name__} instead of an object",
            status_code=resp.status_code,
        )
    return body


class RemoteSyncClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        token_provider: TokenProvider | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.REMOTE_API_URL).rstrip("/")
        self.token_provider = token_provider or (lambda: settings.REMOTE_API_TOKEN)
        self.timeout = timeout if timeout is not None else settings.REMOTE_API_TIMEOUT_SEC
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        token = self.token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        """Single request; raises RemoteSyncError on network or non-2xx outcome."""
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                resp = await client.request(method, url, json=json, headers=self._headers())
        except httpx.HTTPError as exc:
            raise RemoteSyncError(f"{method} {path} failed: {exc}") from exc

        if resp.is_error:
            raise RemoteSyncError(
                f"{method} {path} returned {resp.status_code}: {_detail(resp)}",
                status_code=resp.status_code,
            )
        return resp

    # ------------------------------------------------------------------
    # Whole-snapshot operations
    # ------------------------------------------------------------------

    async def push(
        self, employees: Sequence[Employee], records: Sequence[AttendanceRecord]
    ) -> SyncResult:
        payload = {
            "employees": [employee.to_wire() for employee in employees],
            "attendanceRecords": [record.to_wire() for record in records],
        }
        try:
            resp = await self._request("POST", "/sync", json=payload)
            body = resp.json()
        except RemoteSyncError as exc:
            logger.warning("Remote push failed: %s", exc)
            return SyncResult(success=False, message=str(exc))
        except ValueError:
            logger.warning("Remote push returned a non-JSON body")
            return SyncResult(success=False, message="Remote returned a non-JSON body")
        if not isinstance(body, dict):
            return SyncResult(success=False, message="Remote returned an unexpected shape")

        try:
            result = SyncResult(
                success=bool(body.get("success", True)),
                message=str(body.get("message", "")),
                synced=SyncCounts(**(body.get("synced") or {})),
                errors=[str(e) for e in body.get("errors") or []],
            )
        except (ValidationError, ValueError, TypeError) as exc:
            logger.warning("Remote push returned an unreadable result: %s", exc)
            return SyncResult(success=False, message="Remote returned an unreadable result")
        logger.info(
            "Remote push: success=%s, employees=%d, attendance=%d, errors=%d",
            result.success, result.synced.employees, result.synced.attendance, len(result.errors),
        )
        return result

    async def pull(self) -> RawSnapshot | None:
        try:
            resp = await self._request("GET", "/data")
            body = resp.json()
        except RemoteSyncError as exc:
            logger.warning("Remote pull failed: %s", exc)
            return None
        except ValueError:
            logger.warning("Remote pull returned a non-JSON body")
            return None

        data = body.get("data", body) if isinstance(body, dict) else None
        if not isinstance(data, dict):
            logger.warning("Remote pull returned an unexpected shape")
            return None

        employees = data.get("employees")
        records = data.get("attendanceRecords")
        snapshot = RawSnapshot(
            employees=employees if isinstance(employees, list) else [],
            attendance_records=records if isinstance(records, list) else [],
        )
        logger.info(
            "Remote pull: employees=%d, attendance=%d",
            len(snapshot.employees), len(snapshot.attendance_records),
        )
        return snapshot

    # ------------------------------------------------------------------
    # Per-entity operations
    # ------------------------------------------------------------------

    async def upsert_employee(self, employee: Employee) -> dict:
        resp = await self._request("POST", "/employees", json=employee.to_wire())
        return _json_body(resp, "POST /employees")

    async def upsert_attendance_record(self, record: AttendanceRecord) -> dict:
        resp = await self._request("POST", "/attendance", json=record.to_wire())
        return _json_body(resp, "POST /attendance")

    async def delete_employee(self, employee_id: int | str) -> dict:
        resp = await self._request("DELETE", f"/employees/{employee_id}")
        return _json_body(resp, f"DELETE /employees/{employee_id}")

    async def delete_attendance_record(self, record_id: int | str) -> dict:
        resp = await self._request("DELETE", f"/attendance/{record_id}")
        return _json_body(resp, f"DELETE /attendance/{record_id}")

    async def push_entities(
        self, employees: Sequence[Employee], records: Sequence[AttendanceRecord]
    ) -> BatchResult:
        """Upsert entity by entity; one failure never stops the rest."""
        batch = BatchResult()

        for employee in employees:
            try:
                body = await self.upsert_employee(employee)
            except RemoteSyncError as exc:
                batch.errors.append(f"employee {employee.id}: {exc}")
                continue
            batch.results.append(
                EntityOutcome(entity="employee", id=employee.id, action=body.get("action", "saved"))
            )

        for record in records:
            try:
                body = await self.upsert_attendance_record(record)
            except RemoteSyncError as exc:
                batch.errors.append(f"attendance {record.id}: {exc}")
                continue
            batch.results.append(
                EntityOutcome(entity="attendance", id=record.id, action=body.get("action", "saved"))
            )

        logger.info(
            "Per-entity push: saved=%d, failed=%d", len(batch.results), len(batch.errors)
        )
        return batch
