"""Tests for the logging setup.

These tests verify that:
    1. PIX keys are masked in every field that names one.
    2. Other fields pass through untouched.
    3. setup_logging installs exactly one root handler at the requested level.
"""

from __future__ import annotations

import logging

import pytest

from work_settlement.logging_config import mask_pix_key, redact_pix_keys, setup_logging


class TestMaskPixKey:
    @pytest.mark.parametrize(
        ("raw", "masked"),
        [
            ("joao@pix.example", "jo************le"),
            ("+5591988887777", "+5**********77"),
            ("abcd", "****"),
            ("", ""),
            (None, None),
        ],
    )
    def test_mask(self, raw: str | None, masked: str | None) -> None:
        assert mask_pix_key(raw) == masked


class TestRedactProcessor:
    def test_masks_pix_fields_only(self) -> None:
        event = {
            "event": "payment_rail.code_rendered",
            "receiver_pix_key": "joao@pix.example",
            "pix_key": "12345678900",
            "correlation_id": "EMP_W_abc",
        }

        result = redact_pix_keys(None, "info", event)

        assert result["receiver_pix_key"] == "jo************le"
        assert result["pix_key"] == "12*******00"
        assert result["correlation_id"] == "EMP_W_abc"

    def test_leaves_missing_key_alone(self) -> None:
        event = {"event": "x", "receiver_pix_key": None}
        assert redact_pix_keys(None, "info", event)["receiver_pix_key"] is None


class TestSetupLogging:
    def test_single_handler_and_level(self) -> None:
        setup_logging(log_level="warning", json_logs=True)
        setup_logging(log_level="warning", json_logs=True)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
