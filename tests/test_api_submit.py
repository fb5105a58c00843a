import base64
import json

from defusedxml import ElementTree as DET

from receipt_queue.printing.payloads import StarPng, parse_payload

EPOS = "{http://www.epson-pos.com/schemas/2011/03/epos-print}"


def _engine(app):
    return app.extensions["receipt_queue.engine"]


def _stored(app, printer):
    return _engine(app).status(printer).entries


def test_missing_and_invalid_api_key(client):
    r = client.post("/api/v1/text", data={"printer": "P1", "text": "hi"})
    assert r.status_code == 401
    assert r.get_json() == {"success": False, "message": "Missing API key"}

    r = client.post("/api/v1/text", data={"apikey": "x" * 32, "printer": "P1", "text": "hi"})
    assert r.status_code == 401
    assert r.get_json()["message"] == "Invalid API key"


def test_text_job_via_form(app, client, api_key):
    r = client.post("/api/v1/text", data={"apikey": api_key, "printer": "P1", "text": "a\nb", "opendrawer": "true"})
    assert r.status_code == 200, r.get_data(as_text=True)
    body = r.get_json()
    assert body["success"] is True
    assert body["message"] == "Print job queued"
    assert body["printer"] == "P1"
    assert body["job_id"].startswith("TXT_")
    assert body["queue_position"] == 1
    assert body["queue_depth"] == 1
    assert body["line_count"] == 2
    assert body["open_drawer"] is True
    assert body["cut"] is True
    assert "queue_overflow" not in body

    (entry,) = _stored(app, "P1")
    assert entry.job_id == body["job_id"]
    root = DET.fromstring(_engine(app).get(entry.id).payload.encode("utf-8"))
    assert root.findtext("ePOSPrint/Parameter/printjobid") == body["job_id"]
    assert root.find(f"ePOSPrint/PrintData/{EPOS}epos-print/{EPOS}pulse") is not None


def test_text_job_via_json_and_header_key(client, api_key):
    r = client.post(
        "/api/v1/text",
        data=json.dumps({"printer": "P1", "text": "hello", "cut": False}),
        headers={"Content-Type": "application/json", "X-API-Key": api_key},
    )
    assert r.status_code == 200
    assert r.get_json()["cut"] is False


def test_text_job_via_query_string(client, api_key):
    r = client.get(f"/api/v1/text?apikey={api_key}&printer=P1&text=hi")
    assert r.status_code == 200
    assert r.get_json()["queue_position"] == 1


def test_text_validation_errors(client, api_key):
    r = client.post("/api/v1/text", data={"apikey": api_key, "text": "hi"})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Missing printer ID"

    r = client.post("/api/v1/text", data={"apikey": api_key, "printer": "***", "text": "hi"})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Invalid printer ID"

    r = client.post("/api/v1/text", data={"apikey": api_key, "printer": "P1"})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Nothing to do: no text and opendrawer is false"


def test_overflow_reports_discarded_job(app, client, api_key):
    job_ids = []
    for i in range(11):
        r = client.post("/api/v1/text", data={"apikey": api_key, "printer": "P1", "text": f"job {i}"})
        job_ids.append(r.get_json()["job_id"])
    body = r.get_json()
    assert body["queue_overflow"] is True
    assert body["discarded_job"] == job_ids[0]
    assert body["queue_depth"] == 10
    assert len(_stored(app, "P1")) == 10


def test_xml_job_stored_verbatim(app, client, api_key):
    doc = (
        '<?xml version="1.0" encoding="utf-8"?><PrintRequestInfo Version="2.00"><ePOSPrint>'
        "<Parameter><devid>local_printer</devid><printjobid>MYJOB_7</printjobid></Parameter>"
        '<PrintData><epos-print xmlns="http://www.epson-pos.com/schemas/2011/03/epos-print">'
        "<text>hi&#10;</text></epos-print></PrintData></ePOSPrint></PrintRequestInfo>"
    )
    r = client.post("/api/v1/xml", data={"apikey": api_key, "printer": "P1", "xml": doc})
    assert r.status_code == 200
    body = r.get_json()
    assert body["job_id"] == "MYJOB_7"
    assert body["xml_size"] == len(doc)
    (entry,) = _stored(app, "P1")
    assert _engine(app).get(entry.id).payload == doc


def test_xml_job_generated_id_and_errors(client, api_key):
    r = client.post("/api/v1/xml", data={"apikey": api_key, "printer": "P1", "xml": "<PrintRequestInfo/>"})
    assert r.status_code == 200
    assert r.get_json()["job_id"].startswith("XML_")

    r = client.post("/api/v1/xml", data={"apikey": api_key, "printer": "P1", "xml": "<foo/>"})
    assert r.status_code == 400
    assert "must start with" in r.get_json()["message"]

    r = client.post("/api/v1/xml", data={"apikey": api_key, "printer": "P1", "xml": "<?xml version='1.0'?><a>"})
    assert r.status_code == 400
    assert r.get_json()["message"].startswith("Invalid XML")

    r = client.post("/api/v1/xml", data={"apikey": api_key, "printer": "P1"})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Missing XML payload"


def test_png_job_rasterised(app, client, api_key, png_factory):
    png = png_factory(10, 3, (0, 0, 0))
    r = client.post(
        "/api/v1/png",
        data={"apikey": api_key, "printer": "P1", "png": "data:image/png;base64," + base64.b64encode(png).decode()},
    )
    assert r.status_code == 200, r.get_data(as_text=True)
    body = r.get_json()
    assert body["job_id"].startswith("PNG_")
    assert body["has_image"] is True
    assert body["image_width"] == 16
    assert body["image_height"] == 3

    (entry,) = _stored(app, "P1")
    root = DET.fromstring(_engine(app).get(entry.id).payload.encode("utf-8"))
    image = root.find(f"ePOSPrint/PrintData/{EPOS}epos-print/{EPOS}image")
    assert base64.b64decode(image.text) == b"\xff\xc0" * 3


def test_png_job_errors(client, api_key, png_factory):
    r = client.post("/api/v1/png", data={"apikey": api_key, "printer": "P1", "png": "%%%"})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Invalid base64 encoding for PNG"

    r = client.post("/api/v1/png", data={"apikey": api_key, "printer": "P1", "png": base64.b64encode(b"GIF89a").decode()})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Data is not a valid PNG image"

    r = client.post("/api/v1/png", data={"apikey": api_key, "printer": "P1"})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Nothing to do: no image and opendrawer is false"

    broken = b"\x89PNG\r\n\x1a\n" + b"\x00" * 20
    r = client.post("/api/v1/png", data={"apikey": api_key, "printer": "P1", "png": base64.b64encode(broken).decode()})
    assert r.status_code == 400


def test_png_size_limit(tmp_path, monkeypatch, png_factory):
    monkeypatch.setenv("RECEIPTQUEUE_DB_PATH", str(tmp_path / "limit.db"))
    monkeypatch.setenv("RECEIPTQUEUE_MAX_PNG_SIZE", "10")
    from receipt_queue import create_app

    app = create_app()
    app.config.update(TESTING=True)
    key = app.extensions["receipt_queue.auth"].create_key()["api_key"]
    r = app.test_client().post(
        "/api/v1/png",
        data={"apikey": key, "printer": "P1", "png": base64.b64encode(png_factory()).decode()},
    )
    assert r.status_code == 400
    assert "too large" in r.get_json()["message"]


def test_drawer_only_png_job(client, api_key):
    r = client.post("/api/v1/png", data={"apikey": api_key, "printer": "P1", "opendrawer": "1"})
    assert r.status_code == 200
    assert r.get_json()["has_image"] is False


def test_star_png_job(app, client, api_key, png_factory):
    png = png_factory(20, 6)
    r = client.post(
        "/api/v1/star/png",
        data={"apikey": api_key, "printer": "S1", "png": base64.b64encode(png).decode(), "opendrawer": "yes"},
    )
    assert r.status_code == 200, r.get_data(as_text=True)
    body = r.get_json()
    assert body["format"] == "star_png"
    assert body["job_id"].startswith("STAR_PNG_")
    assert (body["image_width"], body["image_height"]) == (20, 6)

    (entry,) = _stored(app, "S1")
    assert parse_payload(_engine(app).get(entry.id).payload) == StarPng(png=png, open_drawer=True)


def test_star_png_rejects_bad_ihdr(client, api_key):
    bad = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\x0dIHDR" + b"\x00" * 13
    r = client.post("/api/v1/star/png", data={"apikey": api_key, "printer": "S1", "png": base64.b64encode(bad).decode()})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Invalid image dimensions"


def test_star_text_job(app, client, api_key):
    r = client.post("/api/v1/star/text", data={"apikey": api_key, "printer": "S1", "text": "hi", "opendrawer": "on"})
    assert r.status_code == 200
    assert r.get_json()["format"] == "star_text"
    (entry,) = _stored(app, "S1")
    assert json.loads(_engine(app).get(entry.id).payload) == {"type": "star", "text": "hi", "openDrawer": True}


def test_test_print_both_formats(app, client, api_key):
    r = client.get(f"/api/v1/testprint?apikey={api_key}&printer=P1&text=Hello")
    assert r.status_code == 200
    assert r.get_json()["job_id"].startswith("TEST_")

    r = client.post("/api/v1/testprint", data={"apikey": api_key, "printer": "S1", "format": "star"})
    assert r.status_code == 200
    assert r.get_json()["job_id"].startswith("STAR_TEST_")

    r = client.post("/api/v1/testprint", data={"apikey": api_key, "printer": "S1", "format": "zebra"})
    assert r.status_code == 400


def test_store_failure_is_503(app, client, api_key, monkeypatch):
    from receipt_queue.core.errors import StoreError

    def boom(*a, **kw):
        raise StoreError("disk full")

    monkeypatch.setattr(_engine(app), "enqueue", boom)
    r = client.post("/api/v1/text", data={"apikey": api_key, "printer": "P1", "text": "hi"})
    assert r.status_code == 503
    assert r.get_json()["success"] is False
