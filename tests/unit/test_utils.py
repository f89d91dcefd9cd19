"""Unit tests for the utils module.

Tests the timed_operation async context manager for timing measurement
and optional structured logging.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from serverwarden.utils import timed_operation


class TestTimedOperation:
    """Tests for the timed_operation async context manager."""

    async def test_yields_dict_with_elapsed_ms(self) -> None:
        async with timed_operation("test_op") as timing:
            await asyncio.sleep(0.01)

        assert isinstance(timing["elapsed_ms"], float)
        assert timing["elapsed_ms"] > 0

    async def test_dict_is_empty_inside_context(self) -> None:
        async with timed_operation("test_op") as timing:
            assert "elapsed_ms" not in timing

    async def test_logs_at_debug_with_extra_fields(self) -> None:
        mock_log = MagicMock()

        async with timed_operation("cycle", log=mock_log, version="1.20.2") as timing:
            await asyncio.sleep(0.01)

        mock_log.debug.assert_called_once_with(
            "cycle", duration_ms=timing["elapsed_ms"], version="1.20.2"
        )
        mock_log.info.assert_not_called()

    async def test_elapsed_recorded_when_block_raises(self) -> None:
        mock_log = MagicMock()

        with pytest.raises(RuntimeError):
            async with timed_operation("failing", log=mock_log) as timing:
                raise RuntimeError("boom")

        assert "elapsed_ms" in timing
        mock_log.debug.assert_called_once()
