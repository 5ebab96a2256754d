import logging

from rssagg.responses import error_response, json_response


def test_json_response_body_and_status():
    resp = json_response(201, {"name": "alice", "tags": [1, 2]})
    assert resp.status_code == 201
    assert resp.mimetype == "application/json"
    assert resp.get_json() == {"name": "alice", "tags": [1, 2]}


def test_empty_object_payload():
    resp = json_response(200, {})
    assert resp.get_data(as_text=True) == "{}"


def test_unencodable_payload_gives_500():
    resp = json_response(200, {"value": object()})
    assert resp.status_code == 500
    assert resp.get_data() == b""


def test_nan_is_rejected():
    assert json_response(200, {"value": float("nan")}).status_code == 500


def test_error_response_shape():
    resp = error_response(400, "something went wrong")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "something went wrong"}


def test_server_error_is_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="rssagg.responses"):
        resp = error_response(500, "Couldn't create user")
    assert resp.status_code == 500
    assert "Responding with 5XX error: Couldn't create user" in caplog.text


def test_client_error_is_not_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="rssagg.responses"):
        error_response(404, "Couldn't get user")
    assert "5XX" not in caplog.text