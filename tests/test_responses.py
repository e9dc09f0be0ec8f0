import pytest

from messente_client import (
    InvalidResponseError,
    ResponseTooLargeError,
    UnsupportedResponseTypeError,
    describe_error,
)
from messente_client.responses import (
    MAX_RESPONSE_BYTES,
    CsvResponse,
    JsonResponse,
    StatusValueResponse,
    decode_http_response,
    decode_response,
    read_body,
)

from conftest import make_response


def test_status_value_ok():
    decoded = decode_response("text/html; charset=UTF-8", b"OK 42")
    assert decoded == StatusValueResponse(status="OK", value="42")
    assert decoded.ok


def test_status_value_error_maps_to_credit_message():
    decoded = decode_response("text/html", b"ERROR 107\n")
    assert decoded.status == "ERROR"
    assert decoded.value == "107"
    assert not decoded.ok
    assert describe_error(decoded.value) == "Not enough credit on account."


def test_status_value_with_too_few_tokens():
    with pytest.raises(InvalidResponseError):
        decode_response("text/html", b"OK")
    with pytest.raises(InvalidResponseError):
        decode_response("text/html", b"   ")


def test_json_labelled_body_with_invalid_json():
    with pytest.raises(InvalidResponseError) as excinfo:
        decode_response("application/json", b"{not json")
    assert "Invalid JSON" in str(excinfo.value)


def test_json_detected_from_body_without_json_label():
    decoded = decode_response("text/html", b'  {"EE": {"price": "0.05"}}')
    assert decoded == JsonResponse(data={"EE": {"price": "0.05"}})


def test_csv_table():
    body = b"country,name,price\r\nEE,Estonia,0.05\r\n\r\nLV,Latvia,0.06\r\n"
    decoded = decode_response("text/csv", body)
    assert isinstance(decoded, CsvResponse)
    assert decoded.rows == [
        ["country", "name", "price"],
        ["EE", "Estonia", "0.05"],
        ["LV", "Latvia", "0.06"],
    ]


def test_unsupported_content_type():
    with pytest.raises(UnsupportedResponseTypeError) as excinfo:
        decode_response("application/xml", b"<ok/>")
    assert excinfo.value.content_type == "application/xml"

    with pytest.raises(UnsupportedResponseTypeError):
        decode_response("", b"OK 1")


def test_describe_error_unknown_codes():
    assert describe_error(101) == "Access is restricted, wrong credentials."
    assert describe_error("104") == "Destination country not found."
    assert describe_error("999") == "Unknown error"
    assert describe_error("abc") == "Unknown error"
    assert describe_error(None) == "Unknown error"


def test_read_body_aborts_before_buffering_everything():
    total = MAX_RESPONSE_BYTES * 3
    response = make_response(b"x" * total)
    with pytest.raises(ResponseTooLargeError) as excinfo:
        read_body(response)
    assert excinfo.value.limit == MAX_RESPONSE_BYTES
    assert response.raw.bytes_read < total


def test_read_body_at_limit_is_accepted():
    response = make_response(b"y" * MAX_RESPONSE_BYTES)
    assert len(read_body(response)) == MAX_RESPONSE_BYTES


def test_decode_http_response_uses_content_type_header():
    decoded = decode_http_response(make_response('{"balance": 1}', "application/json"))
    assert decoded.data == {"balance": 1}
