from __future__ import annotations

"""
Printer-facing polling endpoints. No API key: printers authenticate by knowing
their own id.

- POST   /epson (and POST /)  : Epson Server Direct Print (ConnectionType form field)
- POST   /cloudprnt           : Star CloudPRNT poll (announce)
- GET    /cloudprnt           : Star CloudPRNT job fetch
- DELETE /cloudprnt           : Star CloudPRNT job confirmation

Nothing here returns 5xx for queue problems; failures degrade to "no job".
"""

from flask import Blueprint, Response, jsonify, request

from receipt_queue import csrf
from receipt_queue.protocols import cloudprnt, server_direct
from .deps import get_engine, get_result_log

printers_bp = Blueprint("printers", __name__)


@csrf.exempt
@printers_bp.post("/")
@printers_bp.post("/epson")
def epson_server_direct():
    body = server_direct.handle_form(get_engine(), get_result_log(), request.form)
    return Response(body, status=200, content_type=server_direct.CONTENT_TYPE)


@csrf.exempt
@printers_bp.post("/cloudprnt")
def cloudprnt_poll():
    body = request.get_json(silent=True, force=True)
    if not isinstance(body, dict):
        body = {}
    printer_id = cloudprnt.printer_id_from_request(body, request.args)
    resp = cloudprnt.announce(get_engine(), printer_id, body)
    return jsonify(resp.to_dict()), 200


@printers_bp.get("/cloudprnt")
def cloudprnt_fetch():
    printer_id = cloudprnt.printer_id_from_request(None, request.args)
    result = cloudprnt.fetch(
        get_engine(),
        printer_id,
        token=request.args.get("token") or None,
        media_type=request.args.get("type") or None,
    )
    if result is None:
        return Response("", status=404, content_type="text/plain")
    resp = Response(result.body, status=200, content_type=result.media_type)
    for name, value in result.headers.items():
        resp.headers[name] = value
    return resp


@csrf.exempt
@printers_bp.delete("/cloudprnt")
def cloudprnt_confirm():
    printer_id = cloudprnt.printer_id_from_request(None, request.args)
    cloudprnt.confirm(
        get_engine(),
        get_result_log(),
        printer_id,
        request.args.get("token") or None,
        request.args.get("code") or None,
    )
    return Response("", status=200, content_type="text/plain")


__all__ = ["printers_bp"]
