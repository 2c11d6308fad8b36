"""Tests for terminal status helpers."""

import io

import pytest
from rich.console import Console

from harflow.console import error, info, success, warn


@pytest.fixture
def buffer_console() -> tuple[Console, io.StringIO]:
    buf = io.StringIO()
    return Console(file=buf, no_color=True, width=120), buf


class TestStatusHelpers:
    """Each helper prefixes its message with a status marker."""

    @pytest.mark.parametrize(
        ("helper", "marker"),
        [(success, "✓"), (error, "✗"), (warn, "⚠"), (info, "")],
    )
    def test_marker_and_message(self, buffer_console, helper, marker: str) -> None:
        console, buf = buffer_console
        helper("Wrote flow.json", console=console)
        output = buf.getvalue()
        assert "Wrote flow.json" in output
        assert marker in output

    def test_markup_in_message_is_rendered(self, buffer_console) -> None:
        console, buf = buffer_console
        info("[bold]3[/bold] edges", console=console)
        assert buf.getvalue().strip() == "3 edges"
