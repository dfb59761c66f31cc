"""LaunchSpec building: resolvers in, one container invocation out."""

from gamedock.launch.builder import BuildOptions, build_launch_spec, exclusive_resource_key

__all__ = ["BuildOptions", "build_launch_spec", "exclusive_resource_key"]
