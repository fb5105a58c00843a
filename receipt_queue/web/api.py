from __future__ import annotations

"""
Submission API (v1) for Receipt Queue.

Endpoints (GET or POST; parameters as JSON, form fields or query string):
- /api/v1/text       : plain text -> ePOS-Print XML
- /api/v1/xml        : pre-built PrintRequestInfo document, stored verbatim
- /api/v1/png        : base64 PNG -> monochrome raster -> ePOS-Print <image>
- /api/v1/star/png   : base64 PNG stored as a Star CloudPRNT PNG job
- /api/v1/star/text  : text stored as a Star CloudPRNT text job
- /api/v1/testprint  : diagnostic page for either printer family

Every endpoint requires an API key (`apikey` parameter or `X-API-Key` header).
Responses are {"success": bool, "message": str, ...}; on success the queue
position and depth are included, plus `queue_overflow`/`discarded_job` when
the submission pushed the oldest pending job out.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from flask import Blueprint, jsonify
from pydantic import BaseModel, ValidationError

from receipt_queue import csrf
from receipt_queue.core.errors import JobValidationError, RasterError, StoreError
from receipt_queue.jobs.engine import generate_job_id
from receipt_queue.printing.epos import build_image_job, build_test_page, build_text_job
from receipt_queue.printing.raster import to_monochrome_raster
from receipt_queue.printing.star import build_star_png_job, build_star_test_page, build_star_text_job, png_dimensions
from . import schemas
from .deps import get_engine, get_settings, json_error, request_data, require_api_key

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api/v1")

M = TypeVar("M", bound=BaseModel)


def _validation_message(e: ValidationError) -> str:
    try:
        msg = e.errors()[0].get("msg") or str(e)
    except (IndexError, AttributeError):
        msg = str(e)
    # pydantic prefixes messages from ValueError raised in validators
    return msg.removeprefix("Value error, ")


def _limits() -> Dict[str, Any]:
    settings = get_settings()
    return {"limits": {"MAX_PNG_SIZE": settings.max_png_size}}


def _parse(model: Type[M]) -> Tuple[Optional[M], Any]:
    """
    Authenticate, then validate the merged request parameters against `model`.
    Returns (request, None) or (None, error_response).
    """
    data = request_data()
    denied = require_api_key(data)
    if denied is not None:
        return None, denied
    try:
        return model.model_validate(data, context=_limits()), None
    except ValidationError as e:
        return None, json_error(_validation_message(e), 400)


def _queue(printer_id: str, payload: str, job_id: str, **extra: Any):
    try:
        result = get_engine().enqueue(printer_id, payload, job_id)
    except JobValidationError as e:
        return json_error(str(e), 400)
    except StoreError as e:
        logger.warning("Enqueue failed for printer=%s job=%s: %s", printer_id, job_id, e)
        return json_error("Failed to create print job, please retry", 503)

    resp = schemas.QueuedJobResponse(
        job_id=result.job_id,
        printer=result.printer_id,
        queue_position=result.position,
        queue_depth=result.depth,
        **extra,
    )
    if result.discarded:
        resp.queue_overflow = True
        resp.discarded_job = result.discarded_job_id
    return jsonify(resp.to_payload()), 200


@csrf.exempt
@api_bp.route("/text", methods=["GET", "POST"])
def submit_text():
    req, err = _parse(schemas.TextJobRequest)
    if err is not None:
        return err
    job_id = generate_job_id("TXT")
    xml = build_text_job(job_id, req.text, open_drawer=req.opendrawer, cut=req.cut)
    return _queue(
        req.printer,
        xml,
        job_id,
        line_count=req.line_count,
        open_drawer=req.opendrawer,
        cut=req.cut,
    )


@csrf.exempt
@api_bp.route("/xml", methods=["GET", "POST"])
def submit_xml():
    req, err = _parse(schemas.XmlJobRequest)
    if err is not None:
        return err
    job_id = req.embedded_job_id or generate_job_id("XML")
    return _queue(req.printer, req.xml, job_id, xml_size=len(req.xml.encode("utf-8")))


@csrf.exempt
@api_bp.route("/png", methods=["GET", "POST"])
def submit_png():
    req, err = _parse(schemas.PngJobRequest)
    if err is not None:
        return err
    settings = get_settings()
    raster = None
    if req.png is not None:
        try:
            raster = to_monochrome_raster(req.png, settings.max_image_width, settings.brightness_threshold)
        except RasterError as e:
            return json_error(str(e), 400)
    job_id = generate_job_id("PNG")
    xml = build_image_job(job_id, raster, open_drawer=req.opendrawer)
    extra: Dict[str, Any] = {"has_image": raster is not None, "open_drawer": req.opendrawer}
    if raster is not None:
        extra.update(image_width=raster.width, image_height=raster.height)
    return _queue(req.printer, xml, job_id, **extra)


@csrf.exempt
@api_bp.route("/star/png", methods=["GET", "POST"])
def submit_star_png():
    req, err = _parse(schemas.StarPngJobRequest)
    if err is not None:
        return err
    extra: Dict[str, Any] = {"format": "star_png", "has_image": req.png is not None, "open_drawer": req.opendrawer}
    if req.png is not None:
        width, height = png_dimensions(req.png)
        extra.update(image_width=width, image_height=height, image_size=len(req.png))
    job_id = generate_job_id("STAR_PNG")
    return _queue(req.printer, build_star_png_job(req.png, req.opendrawer), job_id, **extra)


@csrf.exempt
@api_bp.route("/star/text", methods=["GET", "POST"])
def submit_star_text():
    req, err = _parse(schemas.StarTextJobRequest)
    if err is not None:
        return err
    job_id = generate_job_id("STAR_TXT")
    payload = build_star_text_job(req.text, req.opendrawer)
    return _queue(
        req.printer,
        payload,
        job_id,
        format="star_text",
        line_count=req.line_count,
        open_drawer=req.opendrawer,
    )


@csrf.exempt
@api_bp.route("/testprint", methods=["GET", "POST"])
def submit_test_print():
    req, err = _parse(schemas.PrinterTestRequest)
    if err is not None:
        return err
    if req.format == "star":
        job_id = generate_job_id("STAR_TEST")
        payload = build_star_test_page(req.printer, job_id, req.text, req.opendrawer)
    else:
        job_id = generate_job_id("TEST")
        payload = build_test_page(req.printer, job_id, req.text, req.opendrawer)
    return _queue(req.printer, payload, job_id, format=req.format, open_drawer=req.opendrawer)


__all__ = ["api_bp"]
