import json
import logging

from fashion_prompts.core.logging_config import (
    JSONFormatter,
    TokenMaskingFilter,
    mask_tokens,
    session_id_var,
)

TOKEN = "MTAxMjM0NTY3ODkwMTIzNDU2.GhIjKl.abcdefghijklmnopqrstuvwxyz0123"


def _record(msg, *args):
    return logging.LogRecord("fashion_prompts.test", logging.INFO, __file__, 1, msg, args, None)


def test_mask_tokens_keeps_prefix_only():
    assert mask_tokens(f"Authorization: {TOKEN} rejected") == "Authorization: MTAxMjM0NT... rejected"
    assert mask_tokens("nothing secret here") == "nothing secret here"


def test_filter_masks_formatted_message():
    record = _record("Connecting with token %s", TOKEN)

    assert TokenMaskingFilter().filter(record) is True
    assert record.getMessage() == "Connecting with token MTAxMjM0NT..."


def test_json_formatter_includes_session_and_extras():
    record = _record("Item finished")
    record.event_type = "item_completed"
    record.item_id = "a"

    token = session_id_var.set("batch_abc")
    try:
        entry = json.loads(JSONFormatter().format(record))
    finally:
        session_id_var.reset(token)

    assert entry["message"] == "Item finished"
    assert entry["session_id"] == "batch_abc"
    assert entry["request_id"] == "-"
    assert entry["event_type"] == "item_completed"
    assert entry["item_id"] == "a"
