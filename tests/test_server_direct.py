import pytest

from receipt_queue.core.errors import ProtocolParseError, StoreError
from receipt_queue.jobs.models import COMPLETED
from receipt_queue.protocols import server_direct as sd

V1_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<PrintResponseInfo Version="1.00">
  <response success="true" code="" status="251658262" />
  <response success="false" code="EPTR_COVER_OPEN" status="251658270" />
</PrintResponseInfo>"""

V2_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<PrintResponseInfo Version="2.00">
  <ePOSPrint>
    <Parameter>
      <devid>local_printer</devid>
      <printjobid>TXT_1700000000_1234</printjobid>
    </Parameter>
    <PrintResponse>
      <response xmlns="http://www.epson-pos.com/schemas/2011/03/epos-print"
                success="true" code="" status="251658262" battery="0"/>
    </PrintResponse>
  </ePOSPrint>
  <ePOSPrint>
    <Parameter>
      <devid>local_printer</devid>
      <printjobid>TXT_1700000001_5678</printjobid>
    </Parameter>
    <PrintResponse>
      <response success="false" code="EX_TIMEOUT" status="0"/>
    </PrintResponse>
  </ePOSPrint>
</PrintResponseInfo>"""


def test_printer_id_from_form_prefers_id_then_name():
    assert sd.printer_id_from_form({"ID": "TM-T88 #1", "Name": "other"}) == "TM-T881"
    assert sd.printer_id_from_form({"ID": "***", "Name": "backup_name"}) == "backup_name"
    assert sd.printer_id_from_form({}) == ""


def test_get_request_delivers_and_completes(engine):
    r = engine.enqueue("P1", "<xml>job</xml>", "J1")
    body = sd.handle_get_request(engine, "P1")
    assert body == "<xml>job</xml>"
    assert engine.get(r.entry_id).status == COMPLETED
    assert engine.get(r.entry_id).processed_at is not None


def test_get_request_empty_queue_returns_empty_body(engine):
    assert sd.handle_get_request(engine, "P1") == ""
    assert sd.handle_get_request(engine, "") == ""


def test_get_request_delivers_in_fifo_order(engine):
    engine.enqueue("P1", "first")
    engine.enqueue("P1", "second")
    assert sd.handle_get_request(engine, "P1") == "first"
    assert sd.handle_get_request(engine, "P1") == "second"
    assert sd.handle_get_request(engine, "P1") == ""


def test_get_request_store_failure_degrades_to_no_job(engine, monkeypatch):
    def boom(printer_id):
        raise StoreError("disk gone")

    monkeypatch.setattr(engine, "lease_next", boom)
    assert sd.handle_get_request(engine, "P1") == ""


def test_parse_v1_response():
    records = sd.parse_response_file("P1", V1_RESPONSE)
    assert len(records) == 2
    ok, bad = records
    assert ok.success is True and ok.code == "" and ok.status_flags == 251658262
    assert ok.job_id is None
    assert ok.response_version == "1.00"
    assert bad.success is False and bad.code == "EPTR_COVER_OPEN"


def test_parse_v2_response():
    records = sd.parse_response_file("P1", V2_RESPONSE)
    assert [r.job_id for r in records] == ["TXT_1700000000_1234", "TXT_1700000001_5678"]
    assert [r.success for r in records] == [True, False]
    assert records[1].code == "EX_TIMEOUT"
    assert records[0].response_version == "2.00"
    assert records[0].raw_response == V2_RESPONSE


@pytest.mark.parametrize(
    "doc",
    [
        "<PrintResponseInfo",
        "not xml at all",
        '<PrintResponseInfo Version="banana"/>',
        '<!DOCTYPE x [<!ENTITY a "aaaa">]><PrintResponseInfo Version="1.00">&a;</PrintResponseInfo>',
    ],
)
def test_parse_rejects_malformed(doc):
    with pytest.raises(ProtocolParseError):
        sd.parse_response_file("P1", doc)


def test_set_response_records_results(result_log):
    stored = sd.handle_set_response(result_log, "P1", V2_RESPONSE)
    assert len(stored) == 2
    recent = result_log.recent("P1")
    assert {r.job_id for r in recent} == {"TXT_1700000000_1234", "TXT_1700000001_5678"}
    assert len(result_log.for_job("TXT_1700000001_5678")) == 1


def test_set_response_swallows_parse_errors(result_log):
    assert sd.handle_set_response(result_log, "P1", "<broken") == []
    assert sd.handle_set_response(result_log, "", V1_RESPONSE) == []
    assert result_log.recent() == []


def test_handle_form_dispatch(engine, result_log):
    engine.enqueue("P1", "payload")
    assert sd.handle_form(engine, result_log, {"ConnectionType": "GetRequest", "ID": "P1"}) == "payload"
    assert (
        sd.handle_form(
            engine,
            result_log,
            {"ConnectionType": "SetResponse", "Name": "P1", "ResponseFile": V1_RESPONSE},
        )
        == ""
    )
    assert len(result_log.recent("P1")) == 2
    assert sd.handle_form(engine, result_log, {"ConnectionType": "Bogus", "ID": "P1"}) == ""
