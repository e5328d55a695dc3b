import json
import logging
from datetime import datetime

import pytest

from appraisal.core.config import settings
from appraisal.core.logging import AppraisalJsonFormatter, RequestContextFilter, request_id_var


@pytest.fixture
def formatter():
    return AppraisalJsonFormatter("%(timestamp) %(level) %(name) %(request_id) %(message)")


def format_record(formatter, message="Initiated appraisal 7"):
    record = logging.LogRecord("appraisal.services.initiation_service", logging.INFO, __file__, 1, message, None, None)
    RequestContextFilter().filter(record)
    return json.loads(formatter.format(record))


def test_json_line_has_an_iso_timestamp(formatter):
    line = format_record(formatter)
    assert line["timestamp"] is not None
    assert datetime.fromisoformat(line["timestamp"]).tzinfo is not None
    assert line["level"] == "INFO"
    assert line["service"] == settings.app_name
    assert line["message"] == "Initiated appraisal 7"


def test_request_id_is_attached_inside_a_request(formatter):
    token = request_id_var.set("req-42")
    try:
        line = format_record(formatter)
    finally:
        request_id_var.reset(token)
    assert line["request_id"] == "req-42"


def test_request_id_is_omitted_outside_a_request(formatter):
    assert "request_id" not in format_record(formatter)
