"""Tests for log masking helpers."""

import logging

import pytest

from trinity.logging import (
    configure_logging,
    get_logger,
    log_chain_write,
    mask_sensitive_data,
    safe_log_dict,
    truncate_hash,
)


class TestMaskSensitiveData:
    def test_masks_private_key(self) -> None:
        text = "private_key=0x" + "ab" * 32
        masked = mask_sensitive_data(text)
        assert "ab" * 32 not in masked
        assert "[REDACTED]" in masked

    def test_masks_signer_uuid(self) -> None:
        text = 'signer_uuid: "123e4567-e89b-12d3-a456-426614174000"'
        assert "426614174000" not in mask_sensitive_data(text)

    def test_masks_signatures(self) -> None:
        text = "sig 0x" + "1f" * 65 + " end"
        assert mask_sensitive_data(text) == "sig [SIGNATURE_REDACTED] end"

    def test_leaves_plain_text(self) -> None:
        assert mask_sensitive_data("agent deployed") == "agent deployed"


class TestSafeLogDict:
    def test_redacts_nested_keys(self) -> None:
        data = {
            "name": "agent",
            "headers": {"X-PAYMENT": "{...}", "x-api-key": "secret-value"},
            "items": [{"signer_uuid": "abc"}, "plain"],
        }
        result = safe_log_dict(data)
        assert result["name"] == "agent"
        assert result["headers"]["X-PAYMENT"] == "[REDACTED]"
        assert result["items"][0]["signer_uuid"] == "[REDACTED]"
        assert result["items"][1] == "plain"

    def test_key_fragments_match(self) -> None:
        assert safe_log_dict({"NEYNAR_API_KEY": "k"})["NEYNAR_API_KEY"] == "[REDACTED]"

    def test_does_not_mutate_input(self) -> None:
        data = {"token": "t"}
        safe_log_dict(data)
        assert data == {"token": "t"}


class TestTruncateHash:
    def test_short_values_unchanged(self) -> None:
        assert truncate_hash("0xabc") == "0xabc"

    def test_long_values_truncated(self) -> None:
        assert truncate_hash("0x" + "f" * 64) == "0xffffffff..."


def test_get_logger_hierarchy() -> None:
    assert get_logger().name == "trinity"
    assert get_logger("workers.social").name == "trinity.workers.social"


def test_chain_write_logged_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    configure_logging(level=logging.INFO, chain_level=logging.DEBUG, handler=logging.NullHandler())
    with caplog.at_level(logging.DEBUG, logger="trinity.chain"):
        log_chain_write("claimETH", "0x" + "11" * 20, "0x" + "22" * 32, ("0x" + "33" * 32, 5))
    assert any("claimETH" in r.getMessage() and "0x33333333..." in r.getMessage() for r in caplog.records)
