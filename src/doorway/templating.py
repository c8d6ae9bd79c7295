"""Kida environment setup.

Creates the kida Environment used for server-rendered pages (the HTML
error page). A configured ``template_dir`` is searched first so the
surrounding application shell can override packaged templates.
"""

from kida import ChoiceLoader, Environment, FileSystemLoader, PackageLoader

from doorway.config import ServerConfig


def create_environment(config: ServerConfig) -> Environment:
    """Create a kida Environment from server configuration.

    Called once while the pipeline is built. The returned environment
    is immutable for the lifetime of the server.
    """
    loaders = []
    if config.template_dir is not None:
        loaders.append(FileSystemLoader(str(config.template_dir)))
    loaders.append(PackageLoader("doorway", "templates"))

    return Environment(
        loader=ChoiceLoader(loaders),
        autoescape=True,
        auto_reload=config.debug,
        trim_blocks=True,
        lstrip_blocks=True,
    )
