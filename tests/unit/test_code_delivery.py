"""Tests for the development code sender."""

import logging
from datetime import timedelta

import pytest

from komikai.services.code_delivery import CodeDelivery, LoggingCodeDelivery


class TestLoggingCodeDelivery:
    async def test_logs_code_and_expiry(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        delivery = LoggingCodeDelivery()

        with caplog.at_level(
            logging.WARNING, logger="komikai.services.code_delivery"
        ):
            await delivery.send_code(
                to_email="user@example.com",
                code="004213",
                expires_in=timedelta(minutes=10),
            )

        assert "user@example.com" in caplog.text
        assert "004213" in caplog.text
        assert "10 minutes" in caplog.text

    def test_is_a_code_delivery(self) -> None:
        assert isinstance(LoggingCodeDelivery(), CodeDelivery)

    def test_interface_cannot_be_instantiated(self) -> None:
        with pytest.raises(TypeError):
            CodeDelivery()  # type: ignore[abstract]
