"""Unit tests for build_launch_spec."""

from __future__ import annotations

import pytest

from gamedock.config import _default_platforms
from gamedock.errors import MissingVolumeError, ValidationError
from gamedock.launch.builder import BuildOptions, build_launch_spec, exclusive_resource_key
from gamedock.launch.emulators import RESET_DEFAULTS_FLAGS
from gamedock.models.catalog import (
    EmulatorSettings,
    Game,
    GameStorage,
    NativeSettings,
    Platform,
    RegistrySetting,
    WindowsSettings,
)
from gamedock.models.launch import (
    DeviceBinding,
    DisplayBinding,
    DisplayProtocol,
    JoystickAssignment,
    SessionRequest,
    StreamingArtifact,
)
from tests.fakes import detected_volumes, wayland_display

PLATFORMS = {p.id: p for p in _default_platforms()}


def request(game: Game, **kwargs) -> SessionRequest:
    return SessionRequest(game_id=game.id, session_id="sess-test", **kwargs)


def native_game(**kwargs) -> Game:
    return Game(
        id="supertux",
        platform_id="linux-native",
        storage=GameStorage(category="roms", path="supertux"),
        file="supertux2",
        **kwargs,
    )


def rom_game(platform_id: str, file: str, settings: EmulatorSettings | None = None) -> Game:
    return Game(
        id=f"{platform_id}-game",
        platform_id=platform_id,
        storage=GameStorage(category="roms", path=platform_id),
        file=file,
        settings=settings,
    )


def wine_game(settings: WindowsSettings | None = None) -> Game:
    return Game(
        id="quake",
        platform_id="windows-wine",
        storage=GameStorage(category="installed", suffix="fast", path="quake"),
        settings=settings or WindowsSettings(executable=r"C:\GOG Games\Quake\quake.exe"),
    )


def build(game: Game, platform_id: str, *, volumes=None, display=None, devices=None, joysticks=None, **req):
    return build_launch_spec(
        game,
        PLATFORMS[platform_id],
        request(game, **req),
        volumes or detected_volumes(installed=["fast"]),
        display or wayland_display(),
        devices or DeviceBinding(),
        joysticks=joysticks,
    )


# One launchable game per platform family, with the categories it needs
LAUNCHES = [
    (native_game(), "linux-native", ["core", "roms"]),
    (wine_game(), "windows-wine", ["core", "installed"]),
    (rom_game("nes", "mario.nes"), "nes", ["core", "roms"]),
    (rom_game("c64", "elite.d64"), "c64", ["core", "roms"]),
    (rom_game("amiga", "lemmings.adf"), "amiga", ["core", "roms"]),
    (rom_game("mame", "pacman.zip"), "mame", ["core", "roms"]),
]


class TestNative:
    def test_binds_and_command(self):
        result = build(native_game(arguments=["--fullscreen"]), "linux-native")
        spec = result.spec

        assert spec.image == "ghcr.io/gamedock/runner-linux-native:latest"
        assert spec.binds[0] == "gamedock_core:/data:rw"
        assert "gamedock_roms:/roms:ro" in spec.binds
        assert "gamedock_cache:/cache:rw" in spec.binds
        assert spec.command == ["/roms/supertux/supertux2", "--fullscreen"]
        assert spec.working_dir == "/roms/supertux"
        assert spec.env["GAME_ID"] == "supertux"
        assert spec.env["SESSION_ID"] == "sess-test"
        assert spec.env["SAVES_PATH"] == "/data/saves/supertux"
        assert spec.env["XDG_CACHE_HOME"] == "/cache/supertux"
        assert result.warnings == []

    def test_game_on_core_shares_core_bind(self):
        game = Game(
            id="tool",
            platform_id="linux-native",
            storage=GameStorage(category="core", path="apps/tool"),
            settings=NativeSettings(launch_command="run.sh"),
        )
        spec = build(game, "linux-native").spec

        core_binds = [b for b in spec.binds if b.startswith("gamedock_core:")]
        assert core_binds == ["gamedock_core:/data:rw"]
        assert spec.command == ["/data/apps/tool/run.sh"]

    def test_settings_env_overrides_base_env(self):
        game = native_game(settings=NativeSettings(env={"SDL_AUDIODRIVER": "pulse"}))
        spec = build(game, "linux-native").spec

        assert spec.env["SDL_AUDIODRIVER"] == "pulse"

    def test_missing_launch_command(self):
        game = Game(id="x", platform_id="linux-native", storage=GameStorage(category="roms"))
        with pytest.raises(ValidationError):
            build(game, "linux-native")


class TestWindows:
    def test_prefix_and_executable(self):
        spec = build(wine_game(), "windows-wine").spec

        assert "gamedock_installed_fast:/installed/fast:rw" in spec.binds
        assert spec.env["WINEPREFIX"] == "/installed/fast/quake/prefix"
        assert spec.env["GAME_EXECUTABLE"] == "/installed/fast/quake/prefix/drive_c/GOG Games/Quake/quake.exe"
        assert spec.env["WINEDEBUG"] == "-all"
        assert spec.command[:2] == ["bash", "-lc"]
        assert spec.working_dir == "/installed/fast/quake/prefix/drive_c/GOG Games/Quake"

    def test_compatibility_environment(self):
        settings = WindowsSettings(
            executable=r"C:\Game\game.exe",
            dll_overrides={"d3d9": "n,b", "ddraw": "n"},
            d3d_renderer="vulkan",
            dxvk=True,
            dxvk_hud="fps",
            winetricks=["vcrun2019", "dotnet48"],
            registry=[RegistrySetting(path=r"HKCU\Software\Wine", name="Version", value="win7")],
        )
        env = build(wine_game(settings), "windows-wine").spec.env

        assert env["WINEDLLOVERRIDES"] == "d3d9=n,b;ddraw=n"
        assert env["WINE_D3D_RENDERER"] == "vulkan"
        assert env["INSTALL_DXVK"] == "true"
        assert env["DXVK_HUD"] == "fps"
        assert env["WINE_WINETRICKS"] == "vcrun2019 dotnet48"
        assert '"name":"Version"' in env["WINE_REGISTRY_SETTINGS"]

    def test_arguments_are_shell_quoted(self):
        settings = WindowsSettings(executable=r"C:\Game\game.exe", arguments=["+map e1m1", "-nosound"])
        command = build(wine_game(settings), "windows-wine").spec.command

        assert command[2] == "wine \"${GAME_EXECUTABLE}\" '+map e1m1' -nosound"

    def test_windows_game_must_be_installed(self):
        game = Game(
            id="quake",
            platform_id="windows-wine",
            storage=GameStorage(category="roms"),
            settings=WindowsSettings(executable=r"C:\q.exe"),
        )
        with pytest.raises(ValidationError):
            build(game, "windows-wine")

    def test_resource_key(self):
        assert exclusive_resource_key(wine_game(), PLATFORMS["windows-wine"]) == "installed/fast:quake"
        assert exclusive_resource_key(native_game(), PLATFORMS["linux-native"]) is None


class TestEmulators:
    def test_retroarch(self):
        spec = build(rom_game("snes", "zelda.sfc"), "snes").spec

        assert "gamedock_roms:/roms:ro" in spec.binds
        assert spec.command == ["/roms/snes/zelda.sfc"]
        assert spec.env["RETROARCH_CORE"] == "snes9x"
        assert spec.env["RETROARCH_SYSTEM_DIR"] == "/data/bios/snes"
        assert spec.env["RETROARCH_SAVES_DIR"] == "/data/saves/snes-game/saves"

    def test_vice(self):
        spec = build(rom_game("c64", "elite.d64"), "c64").spec
        assert spec.command == ["x64sc", "/roms/c64/elite.d64"]

    def test_fs_uae_model(self):
        spec = build(rom_game("amiga", "lemmings.adf", EmulatorSettings(model="A1200")), "amiga").spec
        assert spec.command == ["fs-uae", "/roms/amiga/lemmings.adf"]
        assert spec.env["FSUAE_AMIGA_MODEL"] == "A1200"

    def test_mame_uses_romset_name(self):
        spec = build(rom_game("mame", "pacman.zip"), "mame").spec
        assert spec.command == ["mame", "-rompath", "/roms/mame", "pacman"]

    def test_assigned_joystick_reaches_environment(self):
        joysticks = {"arcade": JoystickAssignment(device_id="usb-0079-0006", device_name="Arcade stick")}

        spec = build(rom_game("mame", "pacman.zip"), "mame", joysticks=joysticks).spec

        assert spec.env["JOYSTICK_DEVICE_ID"] == "usb-0079-0006"
        assert spec.env["JOYSTICK_DEVICE_NAME"] == "Arcade stick"

    def test_mame_romset_named_like_reset_flag_is_rejected(self):
        with pytest.raises(ValidationError):
            build(rom_game("mame", "-default.zip"), "mame")

    def test_unsupported_extension_warns(self):
        result = build(rom_game("nes", "mario.txt"), "nes")
        assert any("mario.txt" in w for w in result.warnings)

    def test_rom_game_must_be_on_roms(self):
        game = Game(id="g", platform_id="nes", storage=GameStorage(category="core"), file="a.nes")
        with pytest.raises(ValidationError):
            build(game, "nes")

    @pytest.mark.parametrize("platform_id", ["nes", "snes", "c64", "amiga", "mame"])
    @pytest.mark.parametrize(
        "arguments",
        [
            ["-default"],
            ["--default"],
            ["-defaults", "-warp"],
            ["-warp", "--defaults", "-autostart"],
            ["-default=1"],
            ["-config", "x.vcr", "-default"],
        ],
    )
    def test_reset_flag_never_reaches_command(self, platform_id, arguments):
        game = rom_game(platform_id, "game.zip", EmulatorSettings(arguments=arguments))
        command = build(game, platform_id).spec.command

        assert not any(a.split("=", 1)[0] in RESET_DEFAULTS_FLAGS for a in command)

    def test_reset_flag_in_platform_defaults_is_stripped(self):
        platform = Platform(
            id="c64",
            type="emulator",
            image="vice:latest",
            default_settings=EmulatorSettings(emulator="vice", arguments=["-default", "-warp"]),
        )
        game = rom_game("c64", "elite.d64")
        spec = build_launch_spec(
            game, platform, request(game), detected_volumes(), wayland_display(), DeviceBinding()
        ).spec

        assert spec.command == ["x64sc", "-warp", "/roms/c64/elite.d64"]


class TestMissingVolumes:
    @pytest.mark.parametrize("game,platform_id,required", LAUNCHES, ids=lambda v: getattr(v, "id", None))
    def test_every_required_category_fails_closed(self, game, platform_id, required):
        for category in required:
            volumes = detected_volumes(installed=["fast"])
            if category == "installed":
                volumes.installed[0].detected = False
            else:
                getattr(volumes, category).detected = False

            with pytest.raises(MissingVolumeError) as exc_info:
                build(game, platform_id, volumes=volumes)

            error = exc_info.value
            assert error.category == category
            assert error.remediation
            assert error.details["mount_path"]

    @pytest.mark.parametrize("game,platform_id,required", LAUNCHES, ids=lambda v: getattr(v, "id", None))
    def test_undetected_volume_is_never_bound(self, game, platform_id, required):
        volumes = detected_volumes(installed=["fast"])
        volumes.cache.detected = False

        result = build(game, platform_id, volumes=volumes)

        assert not any(b.startswith("gamedock_cache:") for b in result.spec.binds)
        assert any("cache" in w for w in result.warnings)

    def test_installed_volume_of_other_suffix_does_not_count(self):
        volumes = detected_volumes(installed=["slow"])
        with pytest.raises(MissingVolumeError) as exc_info:
            build(wine_game(), "windows-wine", volumes=volumes)

        assert exc_info.value.suffix == "fast"
        assert exc_info.value.details["mount_path"] == "/installed/fast"

    def test_non_conformant_volume_warns(self):
        volumes = detected_volumes()
        volumes.roms.mount_path = "/mnt/roms"
        volumes.roms.conformant = False

        result = build(native_game(), "linux-native", volumes=volumes)

        assert "gamedock_roms:/roms:ro" in result.spec.binds
        assert any("/mnt/roms" in w for w in result.warnings)


class TestDisplayAndDevices:
    def test_x11_display_applies_ipc_and_seccomp(self):
        display = DisplayBinding(
            protocol=DisplayProtocol.X11,
            host_socket_path="/tmp/.X11-unix/X0",
            env={"DISPLAY": ":0"},
            binds=["/tmp/.X11-unix:/tmp/.X11-unix:rw"],
            ipc_mode="host",
            security_opts=["seccomp=unconfined"],
        )
        spec = build(native_game(), "linux-native", display=display).spec

        assert spec.ipc_mode == "host"
        assert spec.security_opts == ["seccomp=unconfined"]
        assert spec.env["DISPLAY"] == ":0"

    def test_wayland_has_no_security_opts(self):
        spec = build(native_game(), "linux-native").spec

        assert spec.security_opts == []
        assert spec.ipc_mode is None

    def test_devices(self):
        devices = DeviceBinding(
            gpu_device_paths=["/dev/dri"],
            shared_memory_bytes=2 * 1024**3,
            audio_device_paths=["/dev/snd"],
            cgroup_device_rules=["c 13:* rmw"],
            group_add=["44", "105"],
            binds=["/dev/input:/dev/input:rw"],
            env={"PULSE_SERVER": "unix:/run/user/1000/pulse/native"},
        )
        spec = build(native_game(), "linux-native", devices=devices).spec

        assert spec.devices == ["/dev/dri", "/dev/snd"]
        assert spec.device_cgroup_rules == ["c 13:* rmw"]
        assert spec.shm_size == 2 * 1024**3
        assert spec.group_add == ["44", "105"]
        assert "/dev/input:/dev/input:rw" in spec.binds
        assert spec.env["PULSE_SERVER"] == "unix:/run/user/1000/pulse/native"

    def test_streaming_artifact_merged_last(self):
        streaming = StreamingArtifact(env={"WAYLAND_DISPLAY": "stream-0"}, binds=["/run/s:/run/s:rw"])
        spec = build(native_game(), "linux-native", streaming=streaming).spec

        assert spec.env["WAYLAND_DISPLAY"] == "stream-0"
        assert spec.binds[-1] == "/run/s:/run/s:rw"


def test_build_is_deterministic():
    first = build(wine_game(), "windows-wine")
    second = build(wine_game(), "windows-wine")

    assert first == second


def test_session_id_required():
    game = native_game()
    with pytest.raises(ValidationError):
        build_launch_spec(
            game,
            PLATFORMS["linux-native"],
            SessionRequest(game_id=game.id),
            detected_volumes(),
            wayland_display(),
            DeviceBinding(),
        )


def test_build_options():
    game = native_game()
    spec = build_launch_spec(
        game,
        PLATFORMS["linux-native"],
        request(game),
        detected_volumes(),
        wayland_display(),
        DeviceBinding(),
        options=BuildOptions(puid=1001, pgid=1002, network_mode="host"),
    ).spec

    assert spec.env["PUID"] == "1001"
    assert spec.env["PGID"] == "1002"
    assert spec.network_mode == "host"
