import json

import pytest

from relay_manager.core.exceptions import SettingsDocumentError
from relay_manager.switching.settings_document import SettingsDocument


def test_missing_file_reads_as_empty(tmp_path):
    document = SettingsDocument(tmp_path / "settings.json")

    assert document.read() == {}
    assert document.get_env("ANTHROPIC_BASE_URL") is None


def test_update_preserves_unrelated_keys(tmp_path):
    path = tmp_path / "settings.json"
    original = {
        "permissions": {"allow": ["Bash(ls)"]},
        "env": {"FOO": "bar", "ANTHROPIC_MODEL": "old"},
        "model": "opus",
    }
    path.write_text(json.dumps(original))

    SettingsDocument(path).update_env({"ANTHROPIC_BASE_URL": "https://relay.example", "ANTHROPIC_MODEL": None})

    written = json.loads(path.read_text())
    assert written["permissions"] == original["permissions"]
    assert written["model"] == "opus"
    assert written["env"] == {"FOO": "bar", "ANTHROPIC_BASE_URL": "https://relay.example"}


def test_unparsable_document_is_not_overwritten(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")

    with pytest.raises(SettingsDocumentError):
        SettingsDocument(path).update_env({"ANTHROPIC_BASE_URL": "https://relay.example"})

    assert path.read_text() == "{not json"


def test_no_temporary_files_left_behind(tmp_path):
    path = tmp_path / "settings.json"

    SettingsDocument(path).update_env({"ANTHROPIC_MODEL": "sonnet"})

    assert [p.name for p in tmp_path.iterdir()] == ["settings.json"]
