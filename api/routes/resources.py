"""
api/routes/resources.py -- Generic collection CRUD behind the access gate.

Routes:
  GET    /{collection}              -- list; ?field=value filters, _sort, _order, _limit
  POST   /{collection}              -- create; 201
  GET    /{collection}/{item_id}    -- one item or 404
  PUT    /{collection}/{item_id}    -- replace or 404
  PATCH  /{collection}/{item_id}    -- shallow merge or 404
  DELETE /{collection}/{item_id}    -- 200 {} or 404

Auth policy: every route here requires a valid Bearer token. That check is
done once by the access gate middleware in api/main.py before routing, which
also leaves the caller's id in request.state.user_id. Nothing in this module
re-checks it.

This router must be included last: its /{collection} pattern matches any
single-segment path. Item routes only take integer ids, so the /auth/* paths
never match them and unsupported methods there answer 405.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request
from fastapi.responses import JSONResponse

from auth.errors import ValidationError
from resources.store import ResourceStore, UnknownCollection

logger = logging.getLogger("authgate.resources")

router = APIRouter()

_CONTROL_PARAMS = ("_sort", "_order", "_limit")


def _store(request: Request) -> ResourceStore:
    return request.app.state.resource_store


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Not found")


def _list_options(request: Request) -> dict:
    params = request.query_params
    filters = {key: value for key, value in params.items() if key not in _CONTROL_PARAMS}
    order = params.get("_order", "asc").lower()
    if order not in ("asc", "desc"):
        raise ValidationError("_order must be 'asc' or 'desc'")
    limit = params.get("_limit")
    if limit is not None:
        try:
            limit = int(limit)
        except ValueError as exc:
            raise ValidationError("_limit must be an integer") from exc
    return {
        "filters": filters,
        "sort": params.get("_sort"),
        "descending": order == "desc",
        "limit": limit,
    }


@router.get("/{collection}")
def list_items(request: Request, collection: str) -> list[dict]:
    try:
        return _store(request).list(collection, **_list_options(request))
    except UnknownCollection:
        raise _not_found() from None


@router.post("/{collection}", status_code=201)
def create_item(request: Request, collection: str, body: Any = Body(...)) -> JSONResponse:
    try:
        item = _store(request).create(collection, body)
    except UnknownCollection:
        raise _not_found() from None
    logger.info("user %s created %s/%s", getattr(request.state, "user_id", None), collection, item["id"])
    return JSONResponse(status_code=201, content=item)


@router.get("/{collection}/{item_id:int}")
def get_item(request: Request, collection: str, item_id: int) -> dict:
    try:
        item = _store(request).get(collection, item_id)
    except UnknownCollection:
        raise _not_found() from None
    if item is None:
        raise _not_found()
    return item


@router.put("/{collection}/{item_id:int}")
def replace_item(request: Request, collection: str, item_id: int, body: Any = Body(...)) -> dict:
    try:
        item = _store(request).replace(collection, item_id, body)
    except UnknownCollection:
        raise _not_found() from None
    if item is None:
        raise _not_found()
    return item


@router.patch("/{collection}/{item_id:int}")
def update_item(request: Request, collection: str, item_id: int, body: Any = Body(...)) -> dict:
    try:
        item = _store(request).merge(collection, item_id, body)
    except UnknownCollection:
        raise _not_found() from None
    if item is None:
        raise _not_found()
    return item


@router.delete("/{collection}/{item_id:int}")
def delete_item(request: Request, collection: str, item_id: int) -> dict:
    try:
        deleted = _store(request).delete(collection, item_id)
    except UnknownCollection:
        raise _not_found() from None
    if not deleted:
        raise _not_found()
    logger.info("user %s deleted %s/%s", getattr(request.state, "user_id", None), collection, item_id)
    return {}
