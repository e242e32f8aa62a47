import json

import pytest
from pydantic import ValidationError

from installer_config import (
    InstallerConfig,
    InstallRequest,
    load_config,
    load_legacy_manifest,
    parse_legacy_manifest,
)


def test_defaults():
    config = load_config(None)
    assert config.title == "Network Addon Mod"
    assert config.required_folder == "Plugins"
    assert config.backup_suffix == "_bak"
    assert config.install_extensions == []
    assert config.window_title == "Network Addon Mod Installer v0.0"


def test_load_config_from_file(tmp_path):
    path = tmp_path / "configuration.json"
    path.write_text(
        json.dumps({"title": "NAM", "nam_version": "42", "install_extensions": ["DAT"]}),
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.window_title == "NAM Installer v42"
    assert config.install_extensions == [".dat"]
    assert config.main_document == "Main.txt"


def test_load_config_bad_json(tmp_path):
    path = tmp_path / "configuration.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        load_config(path)


def test_extensions_are_normalized():
    config = InstallerConfig(install_extensions=["DAT", " .Txt ", ""])
    assert config.install_extensions == [".dat", ".txt"]


def test_required_folder_must_be_one_segment():
    assert InstallerConfig(required_folder="Plugins/").required_folder == "Plugins"
    with pytest.raises(ValidationError):
        InstallerConfig(required_folder="SimCity 4/Plugins")
    with pytest.raises(ValidationError):
        InstallerConfig(build_root_name="")


def test_backup_suffix_must_not_be_empty():
    with pytest.raises(ValidationError):
        InstallerConfig(backup_suffix="")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("C:\\Users\\me\\Documents\\SimCity 4\\Plugins\\", "C:/Users/me/Documents/SimCity 4/Plugins"),
        ("  /home/me/Plugins/  ", "/home/me/Plugins"),
        ("/", "/"),
    ],
)
def test_request_location_is_normalized(raw, expected):
    assert InstallRequest(location=raw).location == expected


def test_request_requires_location():
    with pytest.raises(ValidationError):
        InstallRequest(files_to_install=["top/Roads"])
    with pytest.raises(ValidationError):
        InstallRequest(location="")


def test_request_from_dict():
    request = InstallRequest.model_validate(
        {"files_to_install": ["top/Roads/Highways"], "location": "/x/Plugins"}
    )
    assert request.files_to_install == ["top/Roads/Highways"]


def test_parse_legacy_manifest():
    text = "old.dat\n\n  NetworkAddonMod_Core.dat  \r\nold.dat\n"
    assert parse_legacy_manifest(text) == ["old.dat", "NetworkAddonMod_Core.dat"]


def test_load_legacy_manifest(tmp_path):
    assert load_legacy_manifest(None) == []
    path = tmp_path / "cleanup.txt"
    path.write_text("first.dat\nsecond.dat\n", encoding="utf-8-sig")
    assert load_legacy_manifest(path) == ["first.dat", "second.dat"]
