"""Tests for text output backends, the fallback chain and post-processing."""

from __future__ import annotations

import pytest

from holdtype import output as output_mod
from holdtype.config import OutputConfig, PostProcessConfig
from holdtype.errors import OutputError
from holdtype.output import (
    ClipboardOutput,
    PasteOutput,
    PostProcessor,
    TypeOutput,
    create_output_chain,
    create_post_processor,
    output_with_fallback,
)

from conftest import FakeOutput


class FakeClipboard:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.copied: list[str] = []

    def copy(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("no clipboard mechanism")
        self.copied.append(text)


class FakeKeyboard:
    events: list[tuple[str, object]] = []

    def type(self, text: str) -> None:
        FakeKeyboard.events.append(("type", text))

    def press(self, key: object) -> None:
        FakeKeyboard.events.append(("press", key))

    def release(self, key: object) -> None:
        FakeKeyboard.events.append(("release", key))


class FakeKey:
    ctrl = "<ctrl>"


@pytest.fixture
def keyboard(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, object]]:
    FakeKeyboard.events = []
    monkeypatch.setattr(output_mod, "Controller", FakeKeyboard)
    monkeypatch.setattr(output_mod, "Key", FakeKey)
    return FakeKeyboard.events


@pytest.fixture
def clipboard(monkeypatch: pytest.MonkeyPatch) -> FakeClipboard:
    fake = FakeClipboard()
    monkeypatch.setattr(output_mod, "pyperclip", fake)
    return fake


# ---------------------------------------------------------------
# Backends
# ---------------------------------------------------------------

def test_type_output_types_text(keyboard: list) -> None:
    TypeOutput().output("hello")

    assert keyboard == [("type", "hello")]


def test_type_output_with_delay_types_per_character(keyboard: list, monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []
    monkeypatch.setattr(output_mod.time, "sleep", sleeps.append)

    TypeOutput(delay_ms=20).output("hi")

    assert keyboard == [("type", "h"), ("type", "i")]
    assert sleeps == [0.02, 0.02]


def test_type_output_without_pynput(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(output_mod, "Controller", None)

    with pytest.raises(OutputError, match="pynput"):
        TypeOutput().output("hello")


def test_type_output_wraps_backend_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    class NoDisplay:
        def __init__(self) -> None:
            raise RuntimeError("cannot open display")

    monkeypatch.setattr(output_mod, "Controller", NoDisplay)

    with pytest.raises(OutputError, match="cannot open display"):
        TypeOutput().output("hello")


def test_clipboard_output_copies(clipboard: FakeClipboard) -> None:
    ClipboardOutput().output("hello")

    assert clipboard.copied == ["hello"]


def test_clipboard_output_failure(clipboard: FakeClipboard) -> None:
    clipboard.fail = True

    with pytest.raises(OutputError, match="clipboard copy failed"):
        ClipboardOutput().output("hello")


def test_paste_output_copies_then_presses_ctrl_v(clipboard: FakeClipboard, keyboard: list) -> None:
    PasteOutput(settle_delay_s=0).output("hello")

    assert clipboard.copied == ["hello"]
    assert keyboard == [
        ("press", "<ctrl>"),
        ("press", "v"),
        ("release", "v"),
        ("release", "<ctrl>"),
    ]


# ---------------------------------------------------------------
# Chain
# ---------------------------------------------------------------

@pytest.mark.parametrize(
    "mode,fallback,expected",
    [
        ("type", True, ["type", "clipboard"]),
        ("type", False, ["type"]),
        ("paste", True, ["paste", "clipboard"]),
        ("paste", False, ["paste"]),
        ("clipboard", False, ["clipboard"]),
    ],
)
def test_create_output_chain(mode: str, fallback: bool, expected: list[str]) -> None:
    chain = create_output_chain(OutputConfig(mode=mode, fallback_to_clipboard=fallback))

    assert [o.name for o in chain] == expected


def test_output_with_fallback_uses_first_success() -> None:
    first, second = FakeOutput(), FakeOutput()

    assert output_with_fallback([first, second], "hi") == "fake"
    assert first.texts == ["hi"]
    assert second.texts == []


def test_output_with_fallback_skips_failures(caplog: pytest.LogCaptureFixture) -> None:
    broken, working = FakeOutput(fail=True), FakeOutput()

    output_with_fallback([broken, working], "hi")

    assert working.texts == ["hi"]
    assert "no target window" in caplog.text


def test_output_with_fallback_all_fail() -> None:
    with pytest.raises(OutputError, match="all output methods failed"):
        output_with_fallback([FakeOutput(fail=True), FakeOutput(fail=True)], "hi")


def test_output_with_empty_chain_fails() -> None:
    with pytest.raises(OutputError):
        output_with_fallback([], "hi")


# ---------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------

def test_post_processor_replaces_text() -> None:
    assert PostProcessor("tr a-z A-Z").process("hello") == "HELLO"


def test_post_processor_strips_output() -> None:
    assert PostProcessor("sed 's/^/  /'").process("hello") == "hello"


def test_post_processor_keeps_text_on_failure() -> None:
    assert PostProcessor("cat >/dev/null; exit 3").process("hello") == "hello"


def test_post_processor_keeps_text_on_empty_output() -> None:
    assert PostProcessor("cat >/dev/null").process("hello") == "hello"


def test_post_processor_keeps_text_on_timeout(caplog: pytest.LogCaptureFixture) -> None:
    assert PostProcessor("sleep 5", timeout_ms=100).process("hello") == "hello"
    assert "timed out" in caplog.text


def test_create_post_processor() -> None:
    assert create_post_processor(PostProcessConfig()) is None

    processor = create_post_processor(PostProcessConfig(command="cat", timeout_ms=250))

    assert processor is not None
    assert processor.command == "cat"
    assert processor.timeout_s == 0.25
