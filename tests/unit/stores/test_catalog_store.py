import pytest

from gamedock.errors import NotFoundError, ValidationError
from gamedock.models.catalog import EmulatorSettings, Platform, WindowsSettings
from gamedock.stores.catalog import InMemoryCatalog, YamlCatalog

CATALOG = r"""
platforms:
  - id: psx
    type: emulator
    image: runner-retroarch:latest
    default_settings: {type: emulator, emulator: retroarch, core: pcsx_rearmed}
  - id: nes
    type: emulator
    image: runner-custom-nes:latest
games:
  - id: witcher
    platform_id: windows-wine
    storage: {category: installed, suffix: fast, path: witcher}
    settings: {type: windows, executable: 'C:\GOG Games\Witcher\witcher.exe'}
  - id: crash
    platform_id: psx
    storage: {category: roms, path: psx}
    file: crash.cue
"""

BASE_PLATFORMS = [
    Platform(id="windows-wine", type="windows", image="runner-wine:latest"),
    Platform(
        id="nes",
        type="emulator",
        image="runner-retroarch:latest",
        default_settings=EmulatorSettings(emulator="retroarch", core="nestopia"),
    ),
]


@pytest.fixture
def catalog(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text(CATALOG)
    return YamlCatalog(path, platforms=BASE_PLATFORMS)


def test_games_are_read(catalog):
    witcher = catalog.require_game("witcher")

    assert witcher.storage.suffix == "fast"
    assert isinstance(witcher.settings, WindowsSettings)
    assert witcher.settings.executable == "C:\\GOG Games\\Witcher\\witcher.exe"


def test_file_platforms_override_configured(catalog):
    assert catalog.require_platform("nes").image == "runner-custom-nes:latest"
    assert catalog.require_platform("windows-wine").image == "runner-wine:latest"
    assert catalog.require_platform("psx").base_settings().core == "pcsx_rearmed"


def test_unknown_ids_raise_not_found(catalog):
    with pytest.raises(NotFoundError):
        catalog.require_game("missing")
    with pytest.raises(NotFoundError):
        catalog.require_platform("missing")


def test_missing_file_uses_configured_platforms(tmp_path):
    catalog = YamlCatalog(tmp_path / "absent.yaml", platforms=BASE_PLATFORMS)

    assert catalog.get_game("witcher") is None
    assert catalog.get_platform("windows-wine") is not None


def test_file_is_reread(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text("games: []\n")
    catalog = YamlCatalog(path)
    assert catalog.get_game("crash") is None

    path.write_text("games:\n  - {id: crash, platform_id: psx, storage: {category: roms}}\n")
    assert catalog.get_game("crash") is not None


def test_invalid_catalog(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text("games:\n  - {id: bad, platform_id: x, storage: {category: installed}}\n")

    with pytest.raises(ValidationError):
        YamlCatalog(path).get_game("bad")


def test_in_memory_catalog():
    catalog = InMemoryCatalog(platforms=BASE_PLATFORMS)

    assert catalog.get_platform("nes").base_settings().core == "nestopia"
    assert catalog.get_game("anything") is None
