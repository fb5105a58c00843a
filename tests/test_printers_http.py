import json

from receipt_queue.jobs.models import COMPLETED, LEASED, PENDING
from receipt_queue.printing.star import build_star_text_job

V2_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<PrintResponseInfo Version="2.00"><ePOSPrint><Parameter><printjobid>J1</printjobid></Parameter>
<PrintResponse><response success="true" code="" status="251658262"/></PrintResponse></ePOSPrint></PrintResponseInfo>"""


def _engine(app):
    return app.extensions["receipt_queue.engine"]


def test_server_direct_poll_delivers_job(app, client):
    r1 = _engine(app).enqueue("TM1", "<PrintRequestInfo/>", "J1")
    r = client.post("/", data={"ConnectionType": "GetRequest", "ID": "TM1"})
    assert r.status_code == 200
    assert r.content_type.startswith("text/xml")
    assert r.get_data(as_text=True) == "<PrintRequestInfo/>"
    assert _engine(app).get(r1.entry_id).status == COMPLETED

    r = client.post("/epson", data={"ConnectionType": "GetRequest", "ID": "TM1"})
    assert r.status_code == 200
    assert r.get_data() == b""


def test_server_direct_report(app, client):
    r = client.post("/epson", data={"ConnectionType": "SetResponse", "ID": "TM1", "ResponseFile": V2_RESPONSE})
    assert r.status_code == 200
    assert r.get_data() == b""
    (rec,) = app.extensions["receipt_queue.results"].recent("TM1")
    assert rec.job_id == "J1"
    assert rec.success is True


def test_server_direct_malformed_report_is_ignored(client):
    r = client.post("/epson", data={"ConnectionType": "SetResponse", "ID": "TM1", "ResponseFile": "<nope"})
    assert r.status_code == 200


def test_cloudprnt_full_cycle(app, client):
    r1 = _engine(app).enqueue("0011620aabbc", build_star_text_job("Receipt", open_drawer=True))

    poll = {"printerMAC": "00:11:62:0a:ab:bc", "statusCode": "200%20OK", "printingInProgress": False}
    r = client.post("/cloudprnt", data=json.dumps(poll), headers={"Content-Type": "application/json"})
    assert r.status_code == 200
    body = r.get_json()
    assert body == {"jobReady": True, "mediaTypes": ["text/plain"], "jobToken": str(r1.entry_id)}
    assert _engine(app).get(r1.entry_id).status == PENDING

    r = client.get(f"/cloudprnt?mac=00:11:62:0a:ab:bc&token={body['jobToken']}&type=text/plain")
    assert r.status_code == 200
    assert r.get_data(as_text=True) == "Receipt"
    assert r.headers["X-Star-Cut"] == "partial; feed=true"
    assert r.headers["X-Star-CashDrawer"] == "end"
    assert _engine(app).get(r1.entry_id).status == LEASED

    r = client.delete(f"/cloudprnt?mac=00:11:62:0a:ab:bc&token={body['jobToken']}&code=200%20OK")
    assert r.status_code == 200
    assert _engine(app).get(r1.entry_id).status == COMPLETED
    (rec,) = app.extensions["receipt_queue.results"].recent("0011620aabbc")
    assert rec.code == "200 OK"

    r = client.post("/cloudprnt", data=json.dumps(poll), headers={"Content-Type": "application/json"})
    assert r.get_json() == {"jobReady": False}


def test_cloudprnt_busy_printer_not_offered_job(app, client):
    r1 = _engine(app).enqueue("S1", "hello")
    poll = {"printerMAC": "S1", "printingInProgress": True}
    r = client.post("/cloudprnt", data=json.dumps(poll), headers={"Content-Type": "application/json"})
    assert r.get_json() == {"jobReady": False}
    assert _engine(app).get(r1.entry_id).status == PENDING


def test_cloudprnt_fetch_missing_is_404(client):
    assert client.get("/cloudprnt?mac=S1&token=99").status_code == 404
    assert client.get("/cloudprnt").status_code == 404


def test_cloudprnt_poll_with_garbage_body(client):
    r = client.post("/cloudprnt", data="not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 200
    assert r.get_json() == {"jobReady": False}


def test_printer_endpoints_do_not_need_api_key(app, client):
    _engine(app).enqueue("S1", "x")
    assert client.get("/cloudprnt?mac=S1").status_code == 200


def test_star_text_submission_prints_verbatim(client, api_key):
    for i, text in enumerate(["<b>Table 4</b>", '{"type": "star", "text": "inner"}', "[STAR:DRAWER]"]):
        printer = f"S{i}"
        r = client.post("/api/v1/star/text", data={"apikey": api_key, "printer": printer, "text": text})
        assert r.status_code == 200
        r = client.get(f"/cloudprnt?mac={printer}")
        assert r.status_code == 200
        assert r.get_data() == text.encode("utf-8")
        assert "X-Star-CashDrawer" not in r.headers


def test_nested_star_text_keeps_polling_alive(client, api_key):
    text = '{"type":' + "[" * 200000
    r = client.post("/api/v1/star/text", data={"apikey": api_key, "printer": "S1", "text": text})
    assert r.status_code == 200
    poll = {"printerMAC": "S1"}
    r = client.post("/cloudprnt", data=json.dumps(poll), headers={"Content-Type": "application/json"})
    assert r.status_code == 200
    assert r.get_json()["jobReady"] is True
    r = client.get(f"/cloudprnt?mac=S1&token={r.get_json()['jobToken']}")
    assert r.status_code == 200
    assert r.get_data() == text.encode("utf-8")
