from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException

from nested_safe_builder.config import AppSettings, get_settings
from nested_safe_builder.environment.base import SafeStateReader
from nested_safe_builder.evm.addresses import normalize_address, parse_bytes32
from nested_safe_builder.evm.rpc_client import OnchainSafeReader
from nested_safe_builder.orchestration.authorization import approval_status
from nested_safe_builder.orchestration.errors import UnknownSafe


def _address_or_422(raw_value: str, field_name: str) -> str:
    try:
        return normalize_address(raw_value, field_name=field_name)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def build_status_app(settings: AppSettings, reader: SafeStateReader) -> FastAPI:
    app = FastAPI(title=f"{settings.project_name}-status", version="0.1.0")

    @app.get("/livez")
    async def livez() -> dict[str, Any]:
        return {"status": "ok", "chain_id": reader.chain_id}

    @app.get("/safes/{address}")
    async def safe_state(address: str) -> dict[str, Any]:
        safe = _address_or_422(address, "address")
        try:
            return reader.get_safe(safe).as_dict()
        except UnknownSafe as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc

    @app.get("/safes/{owner_safe}/approvals/{safe_tx_hash}")
    async def approvals(owner_safe: str, safe_tx_hash: str) -> dict[str, Any]:
        owner = _address_or_422(owner_safe, "owner_safe")
        try:
            tx_hash = parse_bytes32(safe_tx_hash, field_name="safe_tx_hash")
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

        try:
            status = approval_status(reader, owner, tx_hash)
        except UnknownSafe as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        return {**status.as_dict(), "status": status.status.value}

    return app


def default_status_app() -> FastAPI:
    settings = get_settings()
    return build_status_app(settings, OnchainSafeReader.from_settings(settings))
