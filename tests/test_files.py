import json
import logging

import pytest

from loctranslate.config import Settings
from loctranslate.errors import TranslationError
from loctranslate.files import (
    LEGACY_MARKER,
    Throttle,
    discover_files,
    remove_markers,
    repair_directory,
    translate_directory,
    translate_structure,
)
from loctranslate.tracking import TrackingFile

TRACKING = ".loctranslate_progress.json"


def write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


def read(path):
    return json.loads(path.read_text(encoding="utf-8"))


def completed(root):
    return read(root / TRACKING)["completed"]


@pytest.fixture
def settings():
    return Settings(line_delay=0, throttle_delay=0)


@pytest.fixture
def mapping():
    return {
        "はい": "Yes",
        "いいえ": "No",
        "こんにちは": "Hello",
        "一": "One",
        "二": "Two",
    }


def test_translate_structure_value_mode():
    data = {"a": "はい", "nested": {"b": ["いいえ", 3, {"c": "はい"}]}, "n": 1, "flag": True, "none": None}
    result = translate_structure(data, lambda s: f"<{s}>")
    assert result == {
        "a": "<はい>",
        "nested": {"b": ["<いいえ>", 3, {"c": "<はい>"}]},
        "n": 1,
        "flag": True,
        "none": None,
    }


def test_translate_structure_key_mode():
    data = {"こんにちは": "你好", "group": {"はい": "是"}, "list": ["いいえ"]}
    result = translate_structure(data, lambda s: f"<{s}>", source="key")
    assert result == {"こんにちは": "<こんにちは>", "group": {"はい": "<はい>"}, "list": ["<いいえ>"]}


def test_discover_files_filters_and_sorts(tmp_path):
    for name in ("b/zh_Hans.json", "a/zh_Hans.json", "a/ja.json", "a/readme.txt"):
        write(tmp_path / name, {})
    found = discover_files(str(tmp_path), "*.json", "zh_Hans")
    assert [p.replace(str(tmp_path), "") for p in found] == ["/a/zh_Hans.json", "/b/zh_Hans.json"]


def test_translate_directory_translates_and_tracks(tmp_path, settings, mapping, fake_translator):
    write(tmp_path / "ui" / "menu.json", {"yes": "はい", "group": {"no": "いいえ"}, "count": 2})
    write(tmp_path / "top.json", ["こんにちは", 5])
    translator = fake_translator(mapping)

    summary = translate_directory(str(tmp_path), translator, settings)

    assert (summary.processed, summary.skipped, summary.failed, summary.strings) == (2, 0, 0, 3)
    assert read(tmp_path / "ui" / "menu.json") == {"yes": "Yes", "group": {"no": "No"}, "count": 2}
    assert read(tmp_path / "top.json") == ["Hello", 5]
    assert completed(tmp_path) == ["top.json", "ui/menu.json"]


def test_output_is_indented_unicode(tmp_path, settings, fake_translator):
    write(tmp_path / "a.json", {"k": "未翻訳"})
    translate_directory(str(tmp_path), fake_translator(), settings)
    text = (tmp_path / "a.json").read_text(encoding="utf-8")
    assert text == '{\n    "k": "未翻訳"\n}\n'


def test_rerun_skips_completed_files(tmp_path, settings, mapping, fake_translator):
    write(tmp_path / "a.json", {"k": "はい"})
    translate_directory(str(tmp_path), fake_translator(mapping), settings)

    again = fake_translator(mapping)
    summary = translate_directory(str(tmp_path), again, settings)
    assert (summary.processed, summary.skipped) == (0, 1)
    assert again.calls == []


def test_reset_reprocesses(tmp_path, settings, mapping, fake_translator):
    write(tmp_path / "a.json", {"k": "はい"})
    translate_directory(str(tmp_path), fake_translator(mapping), settings)
    write(tmp_path / "a.json", {"k": "いいえ"})

    summary = translate_directory(str(tmp_path), fake_translator(mapping), settings, reset=True)
    assert summary.processed == 1
    assert read(tmp_path / "a.json") == {"k": "No"}


def test_key_mode(tmp_path, mapping, fake_translator):
    write(tmp_path / "zh_Hans.json", {"こんにちは": "你好", "一\n二": "一\n二"})
    settings = Settings(source="key", line_delay=0, throttle_delay=0)
    translate_directory(str(tmp_path), fake_translator(mapping), settings)
    assert read(tmp_path / "zh_Hans.json") == {"こんにちは": "Hello", "一\n二": "One\nTwo"}


def test_legacy_marker_means_done(tmp_path, settings, mapping, fake_translator):
    write(tmp_path / "a.json", {LEGACY_MARKER: True, "k": "はい"})
    translator = fake_translator(mapping)
    summary = translate_directory(str(tmp_path), translator, settings)
    assert summary.processed == 1
    assert translator.calls == []
    assert read(tmp_path / "a.json") == {"k": "はい"}
    assert completed(tmp_path) == ["a.json"]


def test_legacy_marker_present_means_done_even_when_false(tmp_path, settings, mapping, fake_translator):
    write(tmp_path / "a.json", {LEGACY_MARKER: False, "k": "はい"})
    translator = fake_translator(mapping)
    translate_directory(str(tmp_path), translator, settings)
    assert translator.calls == []
    assert read(tmp_path / "a.json") == {"k": "はい"}
    assert completed(tmp_path) == ["a.json"]


def test_broken_json_skipped(tmp_path, settings, mapping, fake_translator, caplog):
    (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
    write(tmp_path / "good.json", {"k": "はい"})

    with caplog.at_level(logging.ERROR):
        summary = translate_directory(str(tmp_path), fake_translator(mapping), settings)

    assert summary.failures == ["bad.json"]
    assert summary.processed == 1
    assert read(tmp_path / "good.json") == {"k": "Yes"}
    assert completed(tmp_path) == ["good.json"]
    assert "bad.json" in caplog.text
    assert (tmp_path / "bad.json").read_text(encoding="utf-8") == "{not json"


def test_unreachable_backend_leaves_files_for_next_run(tmp_path, settings, fake_translator):
    write(tmp_path / "a.json", {"k": "はい"})
    write(tmp_path / "b.json", {"k": "いいえ"})
    summary = translate_directory(str(tmp_path), fake_translator(reachable=False), settings)
    assert (summary.processed, summary.failures) == (0, ["a.json", "b.json"])
    assert read(tmp_path / "a.json") == {"k": "はい"}
    assert len(TrackingFile(str(tmp_path / TRACKING)).load()) == 0


def test_backend_dying_mid_batch(tmp_path, settings, mapping, fake_translator):
    write(tmp_path / "a.json", {"k": "はい"})
    write(tmp_path / "b.json", {"k": "こんにちは", "other": "いいえ"})

    def flaky(text):
        if text == "いいえ":
            raise TranslationError("server went away")
        return mapping[text]

    summary = translate_directory(str(tmp_path), fake_translator(func=flaky), settings)

    assert summary.failures == ["b.json"]
    assert completed(tmp_path) == ["a.json"]
    assert read(tmp_path / "b.json") == {"k": "こんにちは", "other": "いいえ"}

    again = fake_translator(mapping)
    summary = translate_directory(str(tmp_path), again, settings)
    assert (summary.processed, summary.skipped, summary.failed) == (1, 1, 0)
    assert read(tmp_path / "b.json") == {"k": "Hello", "other": "No"}
    assert completed(tmp_path) == ["a.json", "b.json"]


def test_tracking_file_outside_root(tmp_path, mapping, fake_translator):
    root = tmp_path / "root"
    write(root / "a.json", {"k": "はい"})
    tracking = tmp_path / "state" / "done.json"
    settings = Settings(tracking_file=str(tracking), line_delay=0, throttle_delay=0)
    translate_directory(str(root), fake_translator(mapping), settings)
    assert read(tracking) == {"completed": ["a.json"]}


def test_throttle_pauses_every_n_strings(tmp_path, mapping, fake_translator, sleeps):
    write(tmp_path / "a.json", {"a": "はい", "b": "いいえ", "c": "はい", "d": "いいえ", "e": "はい"})
    settings = Settings(throttle_every=2, throttle_delay=0.25, line_delay=0)
    translate_directory(str(tmp_path), fake_translator(mapping), settings, sleep=sleeps)
    assert sleeps.calls == [0.25, 0.25]


def test_throttle_disabled():
    calls = []
    throttle = Throttle(0, 1.0, calls.append)
    for _ in range(5):
        throttle.tick()
    assert calls == []


def test_repair_directory(tmp_path, settings, mapping, fake_translator):
    write(tmp_path / "a.json", {"一\n二": "One Two", "三\n四": "Three<br>Four", "単": "Single"})
    write(tmp_path / "b.json", {"一\n二": "One\nTwo"})
    summary = repair_directory(str(tmp_path), fake_translator(mapping), settings)
    assert (summary.processed, summary.skipped, summary.strings) == (1, 1, 2)
    assert read(tmp_path / "a.json") == {"一\n二": "One\nTwo", "三\n四": "Three\nFour", "単": "Single"}


def test_repair_keeps_file_when_backend_down(tmp_path, settings, fake_translator):
    write(tmp_path / "a.json", {"一\n二": "One Two"})
    summary = repair_directory(str(tmp_path), fake_translator(reachable=False), settings)
    assert summary.failures == ["a.json"]
    assert read(tmp_path / "a.json") == {"一\n二": "One Two"}


def test_remove_markers(tmp_path, settings):
    write(tmp_path / "a.json", {LEGACY_MARKER: True, "k": "v"})
    write(tmp_path / "b.json", {"k": "v"})
    (tmp_path / "c.json").write_text("[", encoding="utf-8")
    summary = remove_markers(str(tmp_path), settings)
    assert (summary.processed, summary.skipped, summary.failures) == (1, 1, ["c.json"])
    assert read(tmp_path / "a.json") == {"k": "v"}
