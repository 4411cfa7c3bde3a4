"""glabu: release compiled binaries to GitLab packages and container registries."""

__version__ = "0.3.0"
