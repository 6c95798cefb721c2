"""
Tests for the Convert-Mode Policy Module
"""

import logging

import pytest

from data_converter.config import ConvertMode
from data_converter.policy import CopyDecision, TableNotEmptyError, decide


class TestDecide:
    """Test the convert-mode decision table."""

    @pytest.mark.parametrize("mode", list(ConvertMode))
    def test_empty_destination_always_copies(self, mode):
        assert decide(0, mode, "orders") is CopyDecision.COPY

    @pytest.mark.parametrize("mode,expected", [
        (ConvertMode.DROP_AND_RECREATE, CopyDecision.CLEAR_THEN_COPY),
        (ConvertMode.SKIP_EXISTING, CopyDecision.SKIP),
        (ConvertMode.THROW_EXCEPTION_IF_EXISTS, CopyDecision.ABORT),
        (ConvertMode.COPY_IF_EMPTY, CopyDecision.SKIP),
    ])
    def test_non_empty_destination(self, mode, expected):
        assert decide(5, mode, "orders") is expected

    def test_skip_existing_logs_table(self, caplog):
        with caplog.at_level(logging.INFO, logger="data_converter.policy"):
            decide(3, ConvertMode.SKIP_EXISTING, "orders")
        assert "Skipping data copy for table orders" in caplog.text

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            decide(-1, ConvertMode.COPY_IF_EMPTY)


class TestTableNotEmptyError:

    def test_message_and_attributes(self):
        error = TableNotEmptyError("dbo.orders", 1500)
        assert error.table_name == "dbo.orders"
        assert error.row_count == 1500
        assert "dbo.orders is not empty (1,500 rows)" in str(error)
