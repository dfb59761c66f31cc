"""Game and platform records consumed from the catalog.

Per-platform settings are a tagged union keyed by ``type``: each platform
family has its own explicit field set instead of one loose bag of
optional keys.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

PlatformType = Literal["native", "windows", "emulator"]
EmulatorName = Literal["retroarch", "vice", "fs-uae", "mame"]


class NativeSettings(BaseModel):
    """Native Linux binary launch settings."""

    type: Literal["native"] = "native"
    launch_command: str | None = None
    arguments: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class RegistrySetting(BaseModel):
    """One Wine registry value applied by the runner at startup."""

    path: str
    name: str
    type: Literal["REG_SZ", "REG_DWORD", "REG_BINARY", "REG_EXPAND_SZ"] = "REG_SZ"
    value: str


class WindowsSettings(BaseModel):
    """Windows title under Wine."""

    type: Literal["windows"] = "windows"
    # Windows-style path, e.g. C:\GOG Games\Game\game.exe
    executable: str | None = None
    arguments: list[str] = Field(default_factory=list)
    # Wine prefix directory, relative to the game's install directory
    prefix: str = "prefix"
    compat_mode: str | None = None
    dll_overrides: dict[str, str] = Field(default_factory=dict)
    d3d_renderer: Literal["gl", "vulkan", "no3d"] | None = None
    virtual_desktop: str | None = None
    dxvk: bool = False
    dxvk_hud: str | None = None
    winedebug: str = "-all"
    winetricks: list[str] = Field(default_factory=list)
    registry: list[RegistrySetting] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class EmulatorSettings(BaseModel):
    """ROM under an emulator."""

    type: Literal["emulator"] = "emulator"
    emulator: EmulatorName | None = None
    core: str | None = None
    model: str | None = None
    arguments: list[str] = Field(default_factory=list)
    fullscreen: bool = False
    env: dict[str, str] = Field(default_factory=dict)


PlatformSettings = Annotated[
    Union[NativeSettings, WindowsSettings, EmulatorSettings],
    Field(discriminator="type"),
]

_DEFAULT_SETTINGS = {
    "native": NativeSettings,
    "windows": WindowsSettings,
    "emulator": EmulatorSettings,
}


class Platform(BaseModel):
    """Platform definition (runner image plus default settings)."""

    id: str
    name: str = ""
    type: PlatformType
    image: str
    supported_extensions: list[str] = Field(default_factory=list)
    default_settings: PlatformSettings | None = None

    @model_validator(mode="after")
    def _check_settings_type(self) -> "Platform":
        if self.default_settings is not None and self.default_settings.type != self.type:
            raise ValueError(
                f"platform '{self.id}' is {self.type} but default_settings are "
                f"{self.default_settings.type}"
            )
        return self

    def base_settings(self) -> NativeSettings | WindowsSettings | EmulatorSettings:
        """Return the platform defaults, or an empty variant for its type."""
        if self.default_settings is not None:
            return self.default_settings
        return _DEFAULT_SETTINGS[self.type]()

    def supports(self, filename: str) -> bool:
        """Whether the file extension is accepted (empty list accepts all)."""
        if not self.supported_extensions:
            return True
        lowered = filename.lower()
        return any(lowered.endswith(ext.lower()) for ext in self.supported_extensions)


class GameStorage(BaseModel):
    """Where a game's files live, by volume category."""

    category: Literal["core", "roms", "installed"]
    # Required for "installed": which installed_<suffix> volume
    suffix: str | None = None
    # Directory relative to the volume root
    path: str = ""

    @model_validator(mode="after")
    def _check_suffix(self) -> "GameStorage":
        if self.category == "installed" and not self.suffix:
            raise ValueError("installed storage requires a volume suffix")
        return self


class Game(BaseModel):
    """Game record as provided by the catalog."""

    id: str
    title: str = ""
    platform_id: str
    storage: GameStorage
    # Executable (native), ROM filename (emulator); Windows uses settings.executable
    file: str | None = None
    arguments: list[str] = Field(default_factory=list)
    settings: PlatformSettings | None = None
