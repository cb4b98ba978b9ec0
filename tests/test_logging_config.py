import json
import logging

from app.logging_config import JSONFormatter, host_ctx, mask_secrets


def test_tokens_and_passwords_are_masked():
    assert mask_secrets("TXT linkbio_verify=abc123_def456") == "TXT linkbio_verify=***"
    assert mask_secrets("Authorization: Bearer eyJ.abc.def") == "Authorization: Bearer ***"
    assert mask_secrets('{"verification_token": "abc"}') == '{"verification_token": "***"}'
    assert mask_secrets("postgresql://linkbio:hunter2@db:5432/linkbio") == "postgresql://linkbio:***@db:5432/linkbio"


def test_json_formatter_includes_host_context():
    token = host_ctx.set("example.com")
    try:
        record = logging.LogRecord("linkbio.test", logging.INFO, __file__, 1, "checked %s", ("example.com",), None)
        entry = json.loads(JSONFormatter().format(record))
    finally:
        host_ctx.reset(token)
    assert entry["host"] == "example.com"
    assert entry["message"] == "checked example.com"
    assert "owner_id" not in entry
