import logging

from services.audit_log import write_audit_log
from services.redaction import mask_tail, redact_dict, redact_text


def test_redact_text_masks_phone_email_and_tokens():
    text = "User kavya190@gmail.com phone +919876543210 token Bearer abcdef"
    redacted = redact_text(text)
    assert "kavya190@gmail.com" not in redacted
    assert "+919876543210" not in redacted
    assert redacted == "[REDACTED]"


def test_redact_text_masks_upi_and_ip():
    redacted = redact_text("upi asha.creator@okaxis from 203.0.113.42")
    assert "asha.creator@okaxis" not in redacted
    assert "a***@okaxis" in redacted
    assert "203.0.*.*" in redacted


def test_redact_dict_masks_sensitive_keys():
    payload = {
        "email": "kavya190@gmail.com",
        "phone_e164": "+919876543210",
        "access_token": "abc",
        "X-Razorpay-Signature": "deadbeef",
        "account_number": "123456789012",
        "ifsc_code": "HDFC0001234",
    }
    redacted = redact_dict(payload)
    assert redacted["email"] == "k***@gmail.com"
    assert redacted["phone_e164"] == "+91987****10"
    assert redacted["access_token"] == "[REDACTED]"
    assert redacted["X-Razorpay-Signature"] == "[REDACTED]"
    assert redacted["account_number"] == "********9012"
    assert redacted["ifsc_code"] == "*******1234"


def test_mask_tail_short_values():
    assert mask_tail("123") == "***"
    assert mask_tail("") == ""


def test_audit_metadata_is_redacted(store):
    write_audit_log(
        store,
        actor="admin@settlement.test",
        action="PAYOUT_REQUEST_COMPLETED",
        target_id="req-1",
        metadata={"details": {"account_number": "123456789012"}, "email": "kavya190@gmail.com"},
    )
    [event] = store.audit_events
    assert event["action"] == "PAYOUT_REQUEST_COMPLETED"
    assert event["metadata"]["details"]["account_number"] == "********9012"
    assert event["metadata"]["email"] == "k***@gmail.com"


def test_log_line_uses_redaction_helper(caplog):
    logger = logging.getLogger("redaction-test")
    caplog.set_level(logging.INFO)
    msg = redact_text("email kavya190@gmail.com phone +919876543210")
    logger.info("payload=%s", msg)
    assert "kavya190@gmail.com" not in caplog.text
    assert "+919876543210" not in caplog.text
