"""Exceptions raised by the installer and launcher and absorbed by the supervisor."""


class SupervisorError(Exception):
    """Base class for worker supervision errors."""


class InstallError(SupervisorError):
    """The bundled artifact could not be copied to, or made executable at, its destination."""


class LaunchError(SupervisorError):
    """The operating system refused to create the worker process."""
